"""Unit tests for workspace.workspace module."""

import pytest

from cms_mirror.mirror.errors import SaveInProgressError
from cms_mirror.mirror.models import ObjectKind
from cms_mirror.remote_client.auth import Authenticator
from cms_mirror.remote_client.http_store import HTTPRemoteStore
from cms_mirror.workspace.errors import ConfigError, UncommittedChangesError, WorkspaceError
from cms_mirror.workspace.models import ContainerConfig, WorkspaceConfig
from cms_mirror.workspace.workspace import Workspace, http_remote_factory
from tests.fixtures.fake_remote import FakeRemoteStore
from tests.fixtures.sample_objects import make_component, make_style


@pytest.fixture
def remotes():
    """One fake remote per container name."""
    return {"main": FakeRemoteStore(first_id=123), "shop": FakeRemoteStore(first_id=500)}


@pytest.fixture
def workspace_root(tmp_path):
    root = tmp_path / "site"
    Workspace.init(root, WorkspaceConfig(
        endpoint="https://cms.test/api",
        containers=[ContainerConfig("main", "/"), ContainerConfig("shop", "/shop")],
    ))
    return root


@pytest.fixture
def workspace(workspace_root, remotes):
    return Workspace.open(workspace_root, lambda config, cc: remotes[cc.name])


class TestInitAndOpen:
    """Test cases for Workspace.init(), open() and locate_root()."""

    def test_init_writes_config(self, workspace_root):
        assert Workspace.config_path(workspace_root).is_file()

    def test_init_refuses_existing_workspace(self, workspace_root):
        with pytest.raises(ConfigError, match="already initialized"):
            Workspace.init(workspace_root, WorkspaceConfig("https://other.test", [ContainerConfig("x", "/")]))

    def test_open_builds_containers_in_config_order(self, workspace, workspace_root):
        assert list(workspace.containers) == ["main", "shop"]
        assert workspace.container("main").root == workspace_root / "__root"
        assert workspace.container("shop").root == workspace_root / "shop"

    def test_locate_root_from_nested_folder(self, workspace_root):
        nested = workspace_root / "__root" / "components" / "home"
        nested.mkdir(parents=True)

        assert Workspace.locate_root(nested) == workspace_root.resolve()

    def test_locate_root_outside_workspace(self, tmp_path):
        with pytest.raises(WorkspaceError):
            Workspace.locate_root(tmp_path)

    def test_unknown_container(self, workspace):
        with pytest.raises(ConfigError, match="Unknown container 'blog'"):
            workspace.container("blog")

    def test_select(self, workspace):
        assert [c.name for c in workspace.select()] == ["main", "shop"]
        assert [c.name for c in workspace.select(["shop"])] == ["shop"]


class TestHttpRemoteFactory:

    def test_builds_http_store_per_container(self, mocker, monkeypatch):
        mocker.patch("cms_mirror.remote_client.auth.load_dotenv")
        monkeypatch.setenv(Authenticator.TOKEN_VAR, "secret")
        monkeypatch.delenv(Authenticator.ENDPOINT_VAR, raising=False)
        factory = http_remote_factory()
        config = WorkspaceConfig("https://cms.test/api", [ContainerConfig("shop", "/shop")])

        store = factory(config, config.containers[0])

        assert isinstance(store, HTTPRemoteStore)
        assert store.container == "shop"
        assert store.credentials.endpoint == "https://cms.test/api"


class TestFind:
    """Test cases for Workspace.find()."""

    def test_path_in_container(self, workspace, workspace_root):
        container, ref = workspace.find(workspace_root / "shop" / "styles" / "base.less")

        assert container.name == "shop"
        assert (ref.kind, ref.handle) == (ObjectKind.STYLE, "base")

    def test_relative_path_uses_cwd(self, workspace, workspace_root, monkeypatch):
        (workspace_root / "__root" / "components" / "home").mkdir(parents=True)
        monkeypatch.chdir(workspace_root / "__root")

        container, ref = workspace.find("components/home")

        assert container.name == "main"
        assert ref.handle == "home"

    def test_non_artifact_in_container(self, workspace, workspace_root):
        container, ref = workspace.find(workspace_root / "__root" / "README.md")
        assert container.name == "main"
        assert ref is None

    def test_outside_every_container(self, workspace, workspace_root):
        assert workspace.find(workspace_root / "notes.txt") == (None, None)


class TestPull:
    """Test cases for Workspace.pull()."""

    def test_pulls_every_container(self, workspace, remotes):
        remotes["main"].seed(make_component("home", path="/"), "1")
        remotes["shop"].seed(make_style("cart"), "2")

        results = workspace.pull()

        assert [r.container for r in results] == ["main", "shop"]
        assert workspace.container("shop").layout.exists(ObjectKind.STYLE, "cart")

    def test_pulls_selected_containers(self, workspace, remotes):
        results = workspace.pull(["shop"])

        assert [r.container for r in results] == ["shop"]
        assert remotes["main"].calls == []

    def test_refuses_dirty_tree(self, workspace, remotes, mocker):
        """Uncommitted edits in a container block the pull before any remote call."""
        workspace.container("main").root.mkdir(parents=True)
        mocker.patch(
            "cms_mirror.workspace.workspace.uncommitted_changes",
            return_value=["styles/base.less"],
        )

        with pytest.raises(UncommittedChangesError) as exc_info:
            workspace.pull()

        assert exc_info.value.changed_files == ["styles/base.less"]
        assert remotes["main"].calls == []

    def test_allow_dirty_skips_the_check(self, workspace, mocker):
        guard = mocker.patch("cms_mirror.workspace.workspace.uncommitted_changes")

        workspace.pull(allow_dirty=True)

        guard.assert_not_called()

    def test_pull_refused_while_saving(self, workspace, mocker):
        mocker.patch.object(workspace.container("main").queue, "is_busy", return_value=True)

        with pytest.raises(SaveInProgressError):
            workspace.pull(["main"])


class TestReloadMetadata:

    def test_reloads_every_container(self, workspace, workspace_root, remotes):
        remotes["main"].seed(make_style("base"), "1")
        other = Workspace.open(workspace_root, lambda config, cc: remotes[cc.name])
        other.pull(["main"])

        assert workspace.container("main").resolve_id("1") is None
        workspace.reload_metadata()
        assert workspace.container("main").resolve_id("1") is not None

    def test_lock_lives_in_state_dir(self, workspace, workspace_root):
        with workspace.lock() as lock:
            assert lock.lock_path == workspace_root / ".cms-mirror" / "workspace.lock"
