"""Backend for task deliverables: safe file access and derived PDF artifacts.

Route handlers in server.py stay thin; the pieces live here:
- sandboxed path resolution against configured roots
- deliverable records (SQLite) and change notifications
- HTML -> PDF rendering in headless Chromium, recorded once per output path

Security note:
Every client-supplied path goes through PathSandbox before any read, preview,
reveal or render. Downstream code only accepts SandboxedPath values.
"""
