"""Tests for tree reconciliation and commit synthesis."""

import pytest

from conftest import BASE_REPO, FORK_REPO, blob_url, make_pull_request
from eipbot.exceptions import GitHubAPIError
from eipbot.models import Commit, FileChange, FileStatus, TreeEntry
from eipbot.tree_reconciler import FirstParentOfMergeCommit, TreeReconciler


@pytest.fixture
def pull_request(host):
    pr = make_pull_request()
    host.seed_pull_request(pr)
    return pr


def seed_head(host, parents=("base-commit",)):
    # Unchanged fork files have the same content (and sha) as the base copies
    host.seed_blob(BASE_REPO, "readme")
    host.seed_blob(BASE_REPO, "x")
    return host.seed_branch(
        FORK_REPO,
        "my-proposal",
        {
            "README.md": (FORK_REPO, "readme"),
            "EIPS/eip-1.md": (BASE_REPO, "eip one"),
            "assets/eip-1/diagram.svg": (FORK_REPO, "x"),
            "EIPS/eip-draft_cool.md": (FORK_REPO, "draft"),
            "assets/eip-draft_cool/logo.png": (FORK_REPO, "logo"),
        },
        parents=parents,
    )


OLD_FILES = [
    FileChange("EIPS/eip-draft_cool.md", FileStatus.ADDED, "draft"),
    FileChange("assets/eip-draft_cool/logo.png", FileStatus.ADDED, "logo"),
    FileChange("EIPS/eip-3.md", FileStatus.REMOVED),
]
NEW_FILES = [
    FileChange("EIPS/eip-42.md", FileStatus.ADDED, "---\neip: 42\n---\n\nbody"),
    FileChange("assets/eip-42/logo.png", FileStatus.ADDED, "logo"),
    FileChange("EIPS/eip-3.md", FileStatus.REMOVED),
]


def tree_paths(host, tree_sha):
    return [entry.path for entry in host.trees["ethereum/eips"][tree_sha]]


def test_reconciled_tree_is_complete(host, settings, pull_request):
    seed_head(host)

    commit = TreeReconciler(host, settings).reconcile(pull_request, OLD_FILES, NEW_FILES, "master")

    paths = tree_paths(host, commit.tree_sha)
    assert sorted(paths) == sorted(
        ["EIPS/eip-42.md", "assets/eip-42/logo.png", "README.md", "EIPS/eip-1.md", "assets/eip-1/diagram.svg"]
    )
    assert len(paths) == len(set(paths))
    assert "EIPS/eip-draft_cool.md" not in paths
    assert "assets/eip-draft_cool/logo.png" not in paths


def test_rewritten_files_become_base_blobs_first(host, settings, pull_request):
    seed_head(host)

    commit = TreeReconciler(host, settings).reconcile(pull_request, OLD_FILES, NEW_FILES, "master")

    assert [e.path for e in commit.entries[:2]] == ["EIPS/eip-42.md", "assets/eip-42/logo.png"]
    assert all(e.mode == "100644" and e.type == "blob" for e in commit.entries[:2])
    blob_repos = {args[0] for name, args in host.calls if name == "create_blob"}
    assert blob_repos == {BASE_REPO}


def test_binary_files_are_staged_with_their_encoding(host, settings):
    png = FileChange("assets/eip-42/logo.png", FileStatus.ADDED, "iVBORw0KGgo=", encoding="base64")

    entries = TreeReconciler(host, settings).stage_new_files(BASE_REPO, [png])

    assert host.blobs["ethereum/eips"][entries[0].sha] == ("iVBORw0KGgo=", "base64")


def test_commit_created_in_base_with_fixed_message(host, settings, pull_request):
    seed_head(host)

    commit = TreeReconciler(host, settings).reconcile(pull_request, OLD_FILES, NEW_FILES, "master")

    stored = host.commits["ethereum/eips"][commit.sha]
    assert stored.tree_sha == commit.tree_sha
    (message,) = [args[1] for name, args in host.calls if name == "create_commit"]
    assert message == "Commit from EIP-Bot"


def test_plain_head_commit_is_updated_from_default_branch(host, settings, pull_request):
    head_sha = seed_head(host)
    pull_request.base_ref = "eipbot/7"

    commit = TreeReconciler(host, settings).reconcile(pull_request, OLD_FILES, NEW_FILES, "master")

    assert commit.parents == [head_sha]
    names = host.call_names()
    assert names.index("update_pull_request_base") < names.index("update_pull_request_branch")
    assert names.index("update_pull_request_branch") < names.index("create_tree")
    assert ("update_pull_request_branch", (BASE_REPO, 7, "master")) in host.calls


def test_merge_head_commit_uses_first_parent(host, settings, pull_request):
    seed_head(host, parents=("fork-point", "upstream"))

    commit = TreeReconciler(host, settings).reconcile(pull_request, OLD_FILES, NEW_FILES, "master")

    assert commit.parents == ["fork-point"]
    assert "update_pull_request_branch" not in host.call_names()


def test_parent_policy_is_replaceable(host, settings, pull_request):
    seed_head(host)

    class Pinned:
        def select_parents(self, head_commit):
            return ["pinned"]

    commit = TreeReconciler(host, settings, parent_policy=Pinned()).reconcile(
        pull_request, OLD_FILES, NEW_FILES, "master"
    )

    assert commit.parents == ["pinned"]


def test_first_parent_policy():
    policy = FirstParentOfMergeCommit()

    assert policy.select_parents(Commit("c", "t", ["a", "b"])) == ["a"]
    assert policy.select_parents(Commit("c", "t", ["a"])) is None


class TestResolveEntry:
    def test_base_resident_entry_reused(self, host, settings):
        entry = TreeEntry("EIPS/eip-1.md", "100755", "blob", "abc", url=blob_url(BASE_REPO, "abc"))

        staged = TreeReconciler(host, settings).resolve_entry(entry, FORK_REPO, BASE_REPO, {"EIPS/eip-1.md"})

        assert staged == TreeEntry("EIPS/eip-1.md", "100755", "blob", "abc")
        assert host.calls == []

    def test_untouched_fork_entry_reused(self, host, settings):
        entry = TreeEntry("README.md", "100644", "blob", "abc", url=blob_url(FORK_REPO, "abc"))

        staged = TreeReconciler(host, settings).resolve_entry(entry, FORK_REPO, BASE_REPO, set())

        assert staged.sha == "abc"
        assert host.calls == []

    def test_changed_fork_entry_copied_into_base(self, host, settings):
        sha = host.seed_blob(FORK_REPO, "Zm9yaw==\n", encoding="base64")
        entry = TreeEntry("assets/x.bin", "100644", "blob", sha, url=blob_url(FORK_REPO, sha))

        staged = TreeReconciler(host, settings).resolve_entry(entry, FORK_REPO, BASE_REPO, {"assets/x.bin"})

        assert staged.path == "assets/x.bin"
        assert host.blobs["ethereum/eips"][staged.sha] == ("Zm9yaw==\n", "base64")
        assert host.call_names() == ["get_blob", "create_blob"]

    def test_entry_without_location_copied_from_head(self, host, settings):
        sha = host.seed_blob(FORK_REPO, "data")
        entry = TreeEntry("a.txt", "100644", "blob", sha)

        TreeReconciler(host, settings).resolve_entry(entry, FORK_REPO, BASE_REPO, {"a.txt"})

        assert host.calls[0] == ("get_blob", (FORK_REPO, sha))

    def test_owner_comparison_ignores_case(self, host, settings):
        entry = TreeEntry("a.txt", "100644", "blob", "abc", url=blob_url(BASE_REPO, "abc").lower())

        staged = TreeReconciler(host, settings).resolve_entry(entry, FORK_REPO, BASE_REPO, {"a.txt"})

        assert staged.sha == "abc"


def test_same_repository_pull_request(host, settings):
    pr = make_pull_request(head=BASE_REPO)
    host.seed_pull_request(pr)
    host.seed_branch(
        BASE_REPO,
        "my-proposal",
        {"README.md": (BASE_REPO, "readme"), "EIPS/eip-5.md": (BASE_REPO, "old")},
    )
    new_files = [FileChange("EIPS/eip-5.md", FileStatus.MODIFIED, "new")]

    commit = TreeReconciler(host, settings).reconcile(pr, new_files, new_files, "master")

    assert sorted(tree_paths(host, commit.tree_sha)) == ["EIPS/eip-5.md", "README.md"]
    assert "get_blob" not in host.call_names()


def test_blob_failure_propagates(host, settings, pull_request):
    seed_head(host)
    host.fail_on["create_blob"] = GitHubAPIError("rate limited", status_code=403)

    with pytest.raises(GitHubAPIError, match="rate limited"):
        TreeReconciler(host, settings).reconcile(pull_request, OLD_FILES, NEW_FILES, "master")

    assert "create_commit" not in host.call_names()
