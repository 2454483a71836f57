# -*- coding: utf-8 -*-
import os

from resizeit.discovery import CandidateFile, discover


def _tree(tmp_path):
    (tmp_path / "top").mkdir()
    (tmp_path / "top" / "a.jpg").write_bytes(b"a")
    (tmp_path / "top" / "b.txt").write_bytes(b"b")
    (tmp_path / "top" / "sub").mkdir()
    (tmp_path / "top" / "sub" / "c.png").write_bytes(b"c")
    (tmp_path / "top" / "sub" / "deeper").mkdir()
    (tmp_path / "top" / "sub" / "deeper" / "d.gif").write_bytes(b"d")
    return tmp_path / "top"


def _names(candidates, start):
    return sorted(os.path.relpath(c.path, str(start)) for c in candidates)


def test_top_level_only(tmp_path):
    top = _tree(tmp_path)
    assert _names(discover([str(top)], recursive=False), tmp_path) == [os.path.join("top", "a.jpg"), os.path.join("top", "b.txt")]


def test_recursive(tmp_path):
    top = _tree(tmp_path)
    assert _names(discover([str(top)], recursive=True), tmp_path) == [
        os.path.join("top", "a.jpg"),
        os.path.join("top", "b.txt"),
        os.path.join("top", "sub", "c.png"),
        os.path.join("top", "sub", "deeper", "d.gif"),
    ]


def test_files_are_taken_as_is_and_resolved(tmp_path, monkeypatch):
    top = _tree(tmp_path)
    monkeypatch.chdir(top)
    candidates = discover(["a.jpg"], recursive=False)
    assert len(candidates) == 1
    assert os.path.isabs(candidates[0].path)
    assert os.path.samefile(candidates[0].path, str(top / "a.jpg"))
    assert os.path.samefile(candidates[0].directory, str(top))
    assert isinstance(candidates[0], CandidateFile)


def test_missing_arguments_are_ignored(tmp_path):
    top = _tree(tmp_path)
    candidates = discover([str(tmp_path / "missing.jpg"), str(top / "a.jpg"), "", str(tmp_path / "nowhere")], recursive=True)
    assert [c.path for c in candidates] == [str(top / "a.jpg")]


def test_overlapping_arguments_are_not_deduplicated(tmp_path):
    top = _tree(tmp_path)
    candidates = discover([str(top / "a.jpg"), str(top), str(top)], recursive=False)
    paths = [c.path for c in candidates]
    assert paths.count(str(top / "a.jpg")) == 3
    assert len(paths) == 5


def test_no_arguments():
    assert discover([], recursive=True) == []
