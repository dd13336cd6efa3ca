"""Tests for the virtual file system: nodes, path resolution, mutators, baseline."""

from pathlib import Path

import pytest

from retrodeck.vfs.baseline import fresh_source, has_source, initial_tree, merge_source, source_files
from retrodeck.vfs.node import Directory, File, Tree, is_valid_name
from retrodeck.vfs.ops import WriteOutcome, ensure_directory, gather_context, make_directory, walk_files, write_file
from retrodeck.vfs.paths import (
    EMPTY_LISTING,
    find_by_name_substring,
    format_entry,
    list_children,
    lookup,
    lookup_directory,
    lookup_file,
    resolve,
    split_path,
)


@pytest.fixture
def tree() -> Tree:
    return Tree(
        children=[
            File(name="readme.txt", content="welcome"),
            Directory(
                name="docs",
                children=[
                    File(name="report.md", content="# Report"),
                    Directory(name="specs"),
                ],
            ),
            Directory(name="repo", children=[File(name="readme.md", content="repo readme")]),
        ]
    )


class TestNodes:
    def test_paths_follow_position(self, tree: Tree):
        docs = tree.get("docs")
        assert docs.path == "/docs"
        assert docs.get("report.md").path == "/docs/report.md"
        assert docs.get("specs").path == "/docs/specs"

    def test_invalid_names_rejected(self):
        for name in ["", ".", "..", "a/b"]:
            assert not is_valid_name(name)
            with pytest.raises(ValueError):
                File(name=name)

    def test_add_duplicate_raises(self, tree: Tree):
        with pytest.raises(KeyError):
            tree.add(File(name="readme.txt"))

    def test_upsert_replaces_in_place(self, tree: Tree):
        tree.upsert(File(name="readme.txt", content="changed"))
        assert [n.name for n in tree.children] == ["readme.txt", "docs", "repo"]
        assert tree.get("readme.txt").content == "changed"

    def test_moving_directory_rebases_subtree(self, tree: Tree):
        repo = tree.remove("repo")
        tree.get("docs").add(repo)
        assert repo.path == "/docs/repo"
        assert repo.get("readme.md").path == "/docs/repo/readme.md"

    def test_empty_directory_is_truthy(self):
        assert Directory(name="empty")

    def test_clone_is_deep(self, tree: Tree):
        copy = tree.clone()
        copy.get("docs").get("report.md").content = "mutated"
        assert tree.get("docs").get("report.md").content == "# Report"
        assert copy.get("readme.txt") == tree.get("readme.txt")


class TestResolve:
    def test_empty_target_is_cwd(self):
        assert resolve("/a/b", "") == "/a/b"
        assert resolve("/", "") == "/"

    def test_parent_saturates_at_root(self):
        assert resolve("/", "..") == "/"
        assert resolve("/a", "../../..") == "/"
        path = "/a/b/c"
        for _ in range(5):
            path = resolve(path, "..")
        assert path == "/"

    def test_relative(self):
        assert resolve("/docs", "specs") == "/docs/specs"
        assert resolve("/a/b", "./c/../d") == "/a/b/d"
        assert resolve("/a/b", "../d") == "/a/d"
        assert resolve("/", "docs/") == "/docs"

    def test_absolute_trailing_slash_stripped(self):
        assert resolve("/a", "/x/") == "/x"
        assert resolve("/a", "/") == "/"

    def test_split_path(self):
        assert split_path("/notes.txt") == ("/", "notes.txt")
        assert split_path("/a/b") == ("/a", "b")


class TestLookup:
    def test_root_is_tree(self, tree: Tree):
        assert lookup_directory(tree, "/") is tree

    def test_directory_vs_file(self, tree: Tree):
        assert lookup_directory(tree, "/docs/specs").name == "specs"
        assert lookup_directory(tree, "/readme.txt") is None
        assert lookup_file(tree, "/docs") is None
        assert lookup_file(tree, "/docs/report.md").content == "# Report"
        assert lookup(tree, "/docs").name == "docs"
        assert lookup(tree, "/missing") is None

    def test_find_matches_names_case_sensitively(self, tree: Tree):
        assert find_by_name_substring(tree, "rep") == ["/docs/report.md", "/repo"]
        assert find_by_name_substring(tree, "REP") == []

    def test_find_descends_into_matching_directories(self, tree: Tree):
        assert find_by_name_substring(tree, "read") == ["/readme.txt", "/repo/readme.md"]

    def test_listing_format(self, tree: Tree):
        assert list_children(tree) == ["[FILE]   readme.txt", "[DIR]    docs", "[DIR]    repo"]
        assert format_entry(tree.get("docs")) == "[DIR]    docs"
        assert list_children(tree.get("docs").get("specs")) == [EMPTY_LISTING]


class TestOps:
    def test_make_directory(self, tree: Tree):
        lab = make_directory(tree, "lab")
        assert lab.path == "/lab"
        with pytest.raises(KeyError):
            make_directory(tree, "lab")

    def test_write_file_outcomes(self, tree: Tree):
        assert write_file(tree, "/notes.txt", "hello") is WriteOutcome.WRITTEN
        assert lookup_file(tree, "/notes.txt").content == "hello"
        assert write_file(tree, "/missing/notes.txt", "x") is WriteOutcome.NO_PARENT
        assert write_file(tree, "/docs/specs", "x") is WriteOutcome.IS_DIRECTORY
        assert write_file(tree, "/docs/", "x") is WriteOutcome.INVALID_NAME
        assert lookup_directory(tree, "/missing") is None

    def test_write_file_replaces(self, tree: Tree):
        write_file(tree, "/readme.txt", "new")
        assert lookup_file(tree, "/readme.txt").content == "new"
        assert len(tree.children) == 3

    def test_ensure_directory(self, tree: Tree):
        created = ensure_directory(tree, "/docs/specs/deep")
        assert created.path == "/docs/specs/deep"
        assert ensure_directory(tree, "/docs") is tree.get("docs")
        assert ensure_directory(tree, "/readme.txt/x") is None

    def test_gather_context_markers(self, tree: Tree):
        context = gather_context(tree, "/docs")
        assert context == "--- START OF report.md ---\n# Report\n--- END OF report.md ---"
        assert gather_context(tree, "/nowhere") == ""

    def test_walk_files(self, tree: Tree):
        assert [f.path for f in walk_files(tree)] == [
            "/readme.txt",
            "/docs/report.md",
            "/repo/readme.md",
        ]


class TestBaseline:
    @pytest.fixture
    def pkg(self, tmp_path: Path) -> Path:
        root = tmp_path / "pkg"
        (root / "sub" / "__pycache__").mkdir(parents=True)
        (root / "a.py").write_text("A = 1\n")
        (root / "sub" / "b.py").write_text("B = 2\n")
        (root / "sub" / "__pycache__" / "c.py").write_text("junk")
        (root / "notes.txt").write_text("not python")
        return root

    def test_initial_tree(self):
        tree = initial_tree()
        assert [n.name for n in tree.children] == ["readme.txt", "docs"]
        assert not has_source(tree)

    def test_source_files_skip_caches(self, pkg: Path):
        assert source_files(pkg) == [(["a.py"], "A = 1\n"), (["sub", "b.py"], "B = 2\n")]

    def test_fresh_source(self, pkg: Path):
        src = fresh_source(pkg)
        assert src.path == "/src"
        assert src.get("sub").get("b.py").path == "/src/sub/b.py"

    def test_merge_is_idempotent(self, pkg: Path):
        tree = initial_tree()
        assert merge_source(tree, pkg) == 2
        before = tree.clone()
        assert merge_source(tree, pkg) == 0
        assert tree == before

    def test_merge_keeps_customized_entries(self, pkg: Path):
        tree = initial_tree()
        merge_source(tree, pkg)
        write_file(tree, "/src/a.py", "A = 42\n")
        tree.get("src").remove("sub")

        assert merge_source(tree, pkg) == 1
        assert lookup_file(tree, "/src/a.py").content == "A = 42\n"
        assert lookup_file(tree, "/src/sub/b.py").content == "B = 2\n"

    def test_merge_leaves_file_named_src(self, pkg: Path):
        tree = Tree(children=[File(name="src", content="mine")])
        assert merge_source(tree, pkg) == 0
        assert tree.get("src").content == "mine"
