import dataclasses
import os

import pytest

from deliverables_backend.errors import Forbidden, NotFound
from deliverables_backend.security import PathSandbox, SandboxedPath, expand_home, is_contained


def test_file_inside_root_is_accepted(sandbox, report_html):
    result = sandbox.resolve(str(report_html))
    assert isinstance(result, SandboxedPath)
    assert result.path == report_html.resolve()
    assert result.root == report_html.parent.parent.resolve()


def test_root_itself_is_accepted(sandbox, shared_root):
    assert sandbox.resolve(str(shared_root)).path == shared_root.resolve()


def test_dotdot_escape_is_forbidden(sandbox, shared_root, outside_dir):
    raw = f"{shared_root}/out/../../outside/hosts"
    with pytest.raises(Forbidden):
        sandbox.resolve(raw)


def test_dotdot_inside_root_is_normalized(sandbox, shared_root, report_html):
    raw = f"{shared_root}/out/../out/./report.html"
    assert sandbox.resolve(raw).path == report_html.resolve()


def test_symlink_escaping_root_is_forbidden(sandbox, shared_root, outside_dir):
    link = shared_root / "out" / "sneaky.txt"
    link.symlink_to(outside_dir / "hosts")
    with pytest.raises(Forbidden):
        sandbox.resolve(str(link))


def test_symlinked_directory_escaping_root_is_forbidden(sandbox, shared_root, outside_dir):
    (shared_root / "linked").symlink_to(outside_dir, target_is_directory=True)
    with pytest.raises(Forbidden):
        sandbox.resolve(str(shared_root / "linked" / "hosts"))


def test_symlink_within_root_resolves_to_target(sandbox, shared_root, report_html):
    link = shared_root / "latest.html"
    link.symlink_to(report_html)
    assert sandbox.resolve(str(link)).path == report_html.resolve()


def test_missing_file_is_not_found(sandbox, shared_root):
    with pytest.raises(NotFound):
        sandbox.resolve(str(shared_root / "nope.txt"))


def test_missing_file_outside_root_is_not_found_not_forbidden(sandbox, outside_dir):
    with pytest.raises(NotFound):
        sandbox.resolve(str(outside_dir / "nope.txt"))


def test_empty_path_is_not_found(sandbox):
    with pytest.raises(NotFound):
        sandbox.resolve("   ")


def test_empty_roots_reject_everything(report_html):
    with pytest.raises(Forbidden):
        PathSandbox([]).resolve(str(report_html))


def test_missing_roots_are_dropped(tmp_path, shared_root, report_html):
    sandbox = PathSandbox([str(tmp_path / "missing"), str(shared_root)])
    assert sandbox.effective_roots() == [str(shared_root.resolve())]
    assert sandbox.resolve(str(report_html)).path == report_html.resolve()


def test_all_roots_missing_is_forbidden(tmp_path, report_html):
    with pytest.raises(Forbidden):
        PathSandbox([str(tmp_path / "a"), str(tmp_path / "b")]).resolve(str(report_html))


def test_sibling_with_common_prefix_is_forbidden(tmp_path, shared_root):
    sibling = tmp_path / "shared-other"
    sibling.mkdir()
    (sibling / "f.txt").write_text("x", encoding="utf-8")
    with pytest.raises(Forbidden):
        PathSandbox([str(shared_root)]).resolve(str(sibling / "f.txt"))


def test_symlinked_root_is_canonicalized(tmp_path, shared_root, report_html):
    alias = tmp_path / "alias"
    alias.symlink_to(shared_root, target_is_directory=True)
    sandbox = PathSandbox([str(alias)])
    assert sandbox.resolve(str(report_html)).path == report_html.resolve()


def test_home_shorthand_expands_for_path_and_roots(tmp_path, shared_root, report_html):
    sandbox = PathSandbox(["~/shared"], home=str(tmp_path))
    assert sandbox.resolve("~/shared/out/report.html").path == report_html.resolve()


def test_home_shorthand_left_literal_without_home(shared_root):
    with pytest.raises(NotFound):
        PathSandbox([str(shared_root)], home=None).resolve("~/shared/out/report.html")


def test_expand_home():
    assert expand_home("~/a/b", "/home/op") == "/home/op/a/b"
    assert expand_home("~", "/home/op") == "/home/op"
    assert expand_home("~other/a", "/home/op") == "~other/a"
    assert expand_home("/abs/~/x", "/home/op") == "/abs/~/x"
    assert expand_home("~/a", None) == "~/a"


def test_is_contained():
    assert is_contained("/srv/shared", "/srv/shared")
    assert is_contained("/srv/shared/out/report.pdf", "/srv/shared")
    assert not is_contained("/srv/shared-other/x", "/srv/shared")
    assert not is_contained("/srv", "/srv/shared")
    assert is_contained("/etc/hosts", os.sep)


def test_sandboxed_path_cannot_be_built_directly(report_html):
    with pytest.raises(TypeError):
        SandboxedPath(path=report_html, root=report_html.parent)


def test_sandboxed_path_cannot_be_forged_with_replace(sandbox, report_html, outside_dir):
    legit = sandbox.resolve(str(report_html))
    with pytest.raises(TypeError):
        dataclasses.replace(legit, path=outside_dir / "hosts")


def test_resolved_paths_compare_by_location(sandbox, report_html):
    assert sandbox.resolve(str(report_html)) == sandbox.resolve(str(report_html))
