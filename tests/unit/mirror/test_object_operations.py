"""Unit tests for mirror.object_operations module."""

import pytest

from cms_mirror.mirror.errors import (
    HandleCollisionError,
    InconsistentStateError,
    InvalidHandleError,
    LayoutError,
    LocalObjectNotFoundError,
    MetadataFilesystemError,
    UnsyncedObjectError,
)
from cms_mirror.mirror.models import ObjectKind
from cms_mirror.remote_client.errors import APIAccessError
from tests.fixtures.sample_objects import make_component, make_style


@pytest.fixture
def pulled(container, remote):
    """Container holding two pulled components and one style."""
    remote.seed(make_component("home", path="/"), "1", "1")
    remote.seed(make_component("about", path="/about"), "2", "1")
    remote.seed(make_style("base"), "3", "1")
    container.pull()
    remote.calls.clear()
    return container


class TestRename:
    """Test cases for ObjectOperations.rename()."""

    def test_renames_remote_files_and_metadata(self, pulled, remote):
        ref = pulled.ref(ObjectKind.COMPONENT, "home")

        renamed = pulled.rename(ref, "landing")

        assert renamed.handle == "landing"
        assert renamed.id == "1"
        assert renamed.revision == "2"
        assert remote.stored(ObjectKind.COMPONENT, "1").handle == "landing"
        assert pulled.layout.exists(ObjectKind.COMPONENT, "landing")
        assert not pulled.layout.exists(ObjectKind.COMPONENT, "home")
        assert pulled.store.get_id(ObjectKind.COMPONENT, "landing") == "1"
        assert pulled.store.get_id(ObjectKind.COMPONENT, "home") is None

    def test_renamed_object_keeps_local_content(self, pulled, remote):
        """Unsaved local edits travel with the rename."""
        ref = pulled.ref(ObjectKind.STYLE, "base")
        ref.local_path.write_text("p {}")

        pulled.rename(ref, "theme")

        assert remote.stored(ObjectKind.STYLE, "3").content == "p {}"

    def test_collision_with_bound_handle_changes_nothing(self, pulled, remote):
        """Renaming onto a bound handle fails before any remote call or file rename."""
        ref = pulled.ref(ObjectKind.COMPONENT, "home")

        with pytest.raises(HandleCollisionError):
            pulled.rename(ref, "about")

        assert remote.writes() == []
        assert pulled.layout.exists(ObjectKind.COMPONENT, "home")
        assert pulled.store.get_id(ObjectKind.COMPONENT, "home") == "1"

    def test_collision_with_local_only_folder(self, pulled, remote):
        """An unsaved folder with the target name also blocks the rename."""
        pulled.layout.build_object(ObjectKind.COMPONENT, "draft")

        with pytest.raises(HandleCollisionError):
            pulled.rename(pulled.ref(ObjectKind.COMPONENT, "home"), "draft")

        assert remote.writes() == []

    def test_invalid_handle(self, pulled, remote):
        with pytest.raises(InvalidHandleError):
            pulled.rename(pulled.ref(ObjectKind.COMPONENT, "home"), "a/b")
        assert remote.writes() == []

    def test_unsynced_object(self, container, remote):
        container.layout.write_object(make_style("draft"))

        with pytest.raises(UnsyncedObjectError):
            container.rename(container.ref(ObjectKind.STYLE, "draft"), "final")

        assert remote.calls == []

    def test_missing_local_files(self, pulled):
        pulled.layout.remove_object(ObjectKind.STYLE, "base")

        with pytest.raises(LocalObjectNotFoundError):
            pulled.rename(pulled.ref(ObjectKind.STYLE, "base"), "theme")

    def test_remote_failure_leaves_local_state(self, pulled, remote):
        remote.fail_on("update", "1", APIAccessError("rejected", 409))

        with pytest.raises(APIAccessError):
            pulled.rename(pulled.ref(ObjectKind.COMPONENT, "home"), "landing")

        assert pulled.layout.exists(ObjectKind.COMPONENT, "home")
        assert pulled.store.get_id(ObjectKind.COMPONENT, "home") == "1"

    def test_local_failure_after_remote_update(self, pulled, remote, mocker):
        """A failed local rename after the remote update is reported as inconsistent."""
        mocker.patch.object(
            pulled.layout,
            "rename_object",
            side_effect=LayoutError("components/home", "rename", "device busy"),
        )

        with pytest.raises(InconsistentStateError) as exc_info:
            pulled.rename(pulled.ref(ObjectKind.COMPONENT, "home"), "landing")

        assert "source directory unchanged" in exc_info.value.divergence
        assert remote.stored(ObjectKind.COMPONENT, "1").handle == "landing"
        assert pulled.store.get_id(ObjectKind.COMPONENT, "home") == "1"

    def test_failed_recording_moves_files_back(self, pulled, remote, mocker):
        """Files return to the old handle when the metadata update fails."""
        mocker.patch.object(
            pulled.store,
            "record_rename",
            side_effect=MetadataFilesystemError("handles.json", "write", "disk full"),
        )

        with pytest.raises(InconsistentStateError) as exc_info:
            pulled.rename(pulled.ref(ObjectKind.COMPONENT, "home"), "landing")

        assert "moved back to 'home'" in exc_info.value.divergence
        assert all(path.is_file() for path in pulled.layout.file_paths(ObjectKind.COMPONENT, "home"))
        assert not pulled.layout.exists(ObjectKind.COMPONENT, "landing")
        assert pulled.store.get_id(ObjectKind.COMPONENT, "home") == "1"

    def test_failed_move_back_is_reported(self, pulled, mocker):
        mocker.patch.object(
            pulled.store,
            "record_rename",
            side_effect=MetadataFilesystemError("handles.json", "write", "disk full"),
        )
        real_rename = pulled.layout.rename_object

        def rename_once(kind, old_handle, new_handle):
            if new_handle == "base":
                raise LayoutError("styles/theme.less", "rename", "device busy")
            return real_rename(kind, old_handle, new_handle)

        mocker.patch.object(pulled.layout, "rename_object", side_effect=rename_once)

        with pytest.raises(InconsistentStateError) as exc_info:
            pulled.rename(pulled.ref(ObjectKind.STYLE, "base"), "theme")

        assert "left under 'theme'" in exc_info.value.divergence
        assert pulled.layout.exists(ObjectKind.STYLE, "theme")

    @pytest.mark.parametrize("operation", ["rename", "clone"])
    def test_same_handle_is_rejected(self, pulled, remote, operation):
        """Renaming or cloning onto the current handle fails before any remote call."""
        ref = pulled.ref(ObjectKind.STYLE, "base")

        with pytest.raises(InvalidHandleError, match="own handle"):
            getattr(pulled, operation)(ref, "base")

        assert remote.writes() == []


class TestClone:
    """Test cases for ObjectOperations.clone()."""

    def test_creates_copy_with_new_id(self, pulled, remote):
        ref = pulled.ref(ObjectKind.COMPONENT, "home")

        clone = pulled.clone(ref, "home-copy")

        assert clone.id == "123"
        assert clone.revision == "1"
        copy = remote.stored(ObjectKind.COMPONENT, "123")
        assert copy.handle == "home-copy"
        assert copy.template == remote.stored(ObjectKind.COMPONENT, "1").template
        assert pulled.store.get_id(ObjectKind.COMPONENT, "home-copy") == "123"
        assert pulled.store.get_id(ObjectKind.COMPONENT, "home") == "1"

    def test_clone_is_not_mounted_on_a_page(self, pulled, remote):
        """A cloned component's page path is cleared."""
        pulled.clone(pulled.ref(ObjectKind.COMPONENT, "home"), "home-copy")

        assert remote.stored(ObjectKind.COMPONENT, "123").path == ""
        assert pulled.layout.read_sidecar(ObjectKind.COMPONENT, "home-copy")["path"] == ""

    def test_collision(self, pulled, remote):
        with pytest.raises(HandleCollisionError):
            pulled.clone(pulled.ref(ObjectKind.COMPONENT, "home"), "about")
        assert remote.writes() == []

    def test_local_failure_after_remote_create(self, pulled, remote, mocker):
        mocker.patch.object(
            pulled.layout,
            "write_object",
            side_effect=LayoutError("styles/copy.less", "write", "disk full"),
        )

        with pytest.raises(InconsistentStateError) as exc_info:
            pulled.clone(pulled.ref(ObjectKind.STYLE, "base"), "copy")

        assert exc_info.value.object_id == "123"
        assert pulled.store.get_id(ObjectKind.STYLE, "copy") is None


class TestDelete:
    """Test cases for ObjectOperations.delete()."""

    def test_deletes_everywhere(self, pulled, remote):
        ref = pulled.ref(ObjectKind.STYLE, "base")

        pulled.delete(ref)

        assert remote.calls_of("delete") == [(ObjectKind.STYLE, "delete", "3")]
        assert "3" not in remote.client(ObjectKind.STYLE).objects
        assert pulled.store.get_id(ObjectKind.STYLE, "base") is None
        assert pulled.store.get_revision("3") is None
        assert not pulled.layout.exists(ObjectKind.STYLE, "base")

    def test_already_deleted_remotely(self, pulled, remote):
        """A remote not-found still cleans up the local copy."""
        del remote.client(ObjectKind.COMPONENT).objects["2"]

        pulled.delete(pulled.ref(ObjectKind.COMPONENT, "about"))

        assert pulled.store.get_id(ObjectKind.COMPONENT, "about") is None
        assert not pulled.layout.exists(ObjectKind.COMPONENT, "about")

    def test_remote_failure_keeps_local_state(self, pulled, remote):
        remote.fail_on("delete", "3", APIAccessError("forbidden", 500))

        with pytest.raises(APIAccessError):
            pulled.delete(pulled.ref(ObjectKind.STYLE, "base"))

        assert pulled.store.get_id(ObjectKind.STYLE, "base") == "3"
        assert pulled.layout.exists(ObjectKind.STYLE, "base")

    def test_file_removal_failure(self, pulled, mocker):
        """Files left behind after the remote delete surface as inconsistent state."""
        mocker.patch.object(
            pulled.layout,
            "remove_object",
            side_effect=LayoutError("styles/base.less", "delete", "read-only"),
        )

        with pytest.raises(InconsistentStateError):
            pulled.delete(pulled.ref(ObjectKind.STYLE, "base"))

        assert pulled.store.get_id(ObjectKind.STYLE, "base") is None

    def test_unsynced_object(self, container, remote):
        container.layout.write_object(make_style("draft"))

        with pytest.raises(UnsyncedObjectError):
            container.delete(container.ref(ObjectKind.STYLE, "draft"))

        assert remote.calls == []
