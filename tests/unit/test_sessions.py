"""Tests for recording session adapters."""

import io
from pathlib import Path

import pytest

from jfrdatasource.adapters.session.directory import DirectoryRecordingSession
from jfrdatasource.adapters.session.in_memory import InMemoryRecordingSession
from jfrdatasource.core.exceptions import NoCurrentRecording, RecordingNotFound
from jfrdatasource.core.ports import RecordingSessionPort


class _Counter:
    def __init__(self) -> None:
        self.calls = 0

    def __call__(self) -> None:
        self.calls += 1


class TestInMemoryRecordingSession:
    """Tests for InMemoryRecordingSession adapter."""

    @pytest.mark.session
    def test_implements_session_port(self) -> None:
        """InMemoryRecordingSession must satisfy RecordingSessionPort protocol."""
        assert isinstance(InMemoryRecordingSession(), RecordingSessionPort)

    @pytest.mark.session
    def test_no_current_recording(self) -> None:
        """A new session has no selection and no stream."""
        session = InMemoryRecordingSession()

        assert session.current() is None
        with pytest.raises(NoCurrentRecording):
            session.current_recording_stream()

    @pytest.mark.session
    def test_add_and_select(self) -> None:
        """Added recordings are listed sorted and the selected one is streamed."""
        session = InMemoryRecordingSession()
        session.add("b.jfr", b"two")
        session.add("a.jfr", b"one", select=True)

        assert session.names() == ["a.jfr", "b.jfr"]
        assert session.current() == "a.jfr"
        assert session.current_recording_stream().read() == b"one"

    @pytest.mark.session
    def test_add_keeps_base_name(self) -> None:
        """Directory components are stripped from names."""
        session = InMemoryRecordingSession()

        assert session.add("../../etc/app.jfr", b"x") == "app.jfr"

    @pytest.mark.session
    def test_set_current_unknown_name(self) -> None:
        """Selecting an unknown name raises RecordingNotFound."""
        with pytest.raises(RecordingNotFound):
            InMemoryRecordingSession().set_current("missing.jfr")

    @pytest.mark.session
    def test_callbacks_on_selection_and_rewrite(self) -> None:
        """Subscribers hear about selection and rewrites of the current recording."""
        session = InMemoryRecordingSession()
        counter = _Counter()
        session.on_recording_changed(counter)

        session.add("a.jfr", b"one", select=True)
        session.add("b.jfr", b"two")
        session.add("a.jfr", b"three")

        assert counter.calls == 2

    @pytest.mark.session
    def test_delete_current_clears_selection(self) -> None:
        """Deleting the current recording clears it once."""
        session = InMemoryRecordingSession()
        session.add("a.jfr", b"one", select=True)
        counter = _Counter()
        session.on_recording_changed(counter)

        assert session.delete("a.jfr") is True
        assert session.delete("a.jfr") is False
        assert session.current() is None
        assert counter.calls == 1

    @pytest.mark.session
    def test_delete_all(self) -> None:
        """delete_all returns the removed names and clears the selection."""
        session = InMemoryRecordingSession()
        session.add("b.jfr", b"two", select=True)
        session.add("a.jfr", b"one")

        assert session.delete_all() == ["a.jfr", "b.jfr"]
        assert session.names() == []
        assert session.current() is None


class TestDirectoryRecordingSession:
    """Tests for DirectoryRecordingSession adapter."""

    @pytest.mark.session
    def test_implements_session_port(self, upload_dir: Path) -> None:
        """DirectoryRecordingSession must satisfy RecordingSessionPort protocol."""
        assert isinstance(DirectoryRecordingSession(upload_dir), RecordingSessionPort)

    @pytest.mark.session
    def test_missing_directory_lists_nothing(self, upload_dir: Path) -> None:
        """A directory that does not exist yet lists no recordings."""
        assert DirectoryRecordingSession(upload_dir).names() == []

    @pytest.mark.session
    def test_save_creates_directory(self, upload_dir: Path) -> None:
        """Saving creates the upload directory."""
        session = DirectoryRecordingSession(upload_dir)

        stored = session.save("app.jfr", io.BytesIO(b"data"))

        assert stored == "app.jfr"
        assert (upload_dir / "app.jfr").read_bytes() == b"data"

    @pytest.mark.session
    def test_save_numbers_duplicates(self, upload_dir: Path) -> None:
        """Duplicate names get numbered suffixes."""
        session = DirectoryRecordingSession(upload_dir)

        names = [session.save("app.jfr", io.BytesIO(b"x")) for _ in range(3)]

        assert names == ["app.jfr", "app.jfr.1", "app.jfr.2"]
        assert session.names() == names

    @pytest.mark.session
    def test_save_overwrite_replaces(self, upload_dir: Path) -> None:
        """Overwrite replaces the file under the same name."""
        session = DirectoryRecordingSession(upload_dir)
        session.save("app.jfr", io.BytesIO(b"old"))

        stored = session.save("app.jfr", io.BytesIO(b"new"), overwrite=True)

        assert stored == "app.jfr"
        assert session.names() == ["app.jfr"]
        assert (upload_dir / "app.jfr").read_bytes() == b"new"

    @pytest.mark.session
    def test_save_strips_directories(self, upload_dir: Path) -> None:
        """Windows style paths are reduced to the file name."""
        session = DirectoryRecordingSession(upload_dir)

        assert session.save("C:\\tmp\\app.jfr", io.BytesIO(b"x")) == "app.jfr"

    @pytest.mark.session
    def test_overwriting_current_notifies(self, upload_dir: Path) -> None:
        """Overwriting the selected file notifies subscribers."""
        session = DirectoryRecordingSession(upload_dir)
        session.save("app.jfr", io.BytesIO(b"old"))
        session.set_current("app.jfr")
        counter = _Counter()
        session.on_recording_changed(counter)

        session.save("app.jfr", io.BytesIO(b"new"), overwrite=True)

        assert counter.calls == 1
        with session.current_recording_stream() as stream:
            assert stream.read() == b"new"

    @pytest.mark.session
    def test_set_current_unknown_name(self, upload_dir: Path) -> None:
        """Selecting a missing file raises RecordingNotFound."""
        with pytest.raises(RecordingNotFound):
            DirectoryRecordingSession(upload_dir).set_current("missing.jfr")

    @pytest.mark.session
    def test_set_current_rejects_empty_name(self, upload_dir: Path) -> None:
        """An empty name is rejected."""
        with pytest.raises(ValueError):
            DirectoryRecordingSession(upload_dir).set_current("")

    @pytest.mark.session
    def test_current_vanishes_with_file(self, upload_dir: Path) -> None:
        """A selection whose file disappeared reads as no selection."""
        session = DirectoryRecordingSession(upload_dir)
        session.save("app.jfr", io.BytesIO(b"x"))
        session.set_current("app.jfr")

        (upload_dir / "app.jfr").unlink()

        assert session.current() is None
        with pytest.raises(NoCurrentRecording):
            session.current_recording_stream()

    @pytest.mark.session
    def test_delete(self, upload_dir: Path) -> None:
        """Deleting reports whether a file was removed."""
        session = DirectoryRecordingSession(upload_dir)
        session.save("app.jfr", io.BytesIO(b"x"))
        session.set_current("app.jfr")

        assert session.delete("app.jfr") is True
        assert session.delete("app.jfr") is False
        assert session.current() is None

    @pytest.mark.session
    def test_delete_all(self, upload_dir: Path) -> None:
        """delete_all removes every stored file."""
        session = DirectoryRecordingSession(upload_dir)
        session.save("b.jfr", io.BytesIO(b"x"))
        session.save("a.jfr", io.BytesIO(b"y"))

        assert session.delete_all() == ["a.jfr", "b.jfr"]
        assert session.names() == []

    @pytest.mark.session
    def test_failed_delete_all_clears_removed_current(
        self, upload_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Removals before a failure still clear and announce the selection."""
        session = DirectoryRecordingSession(upload_dir)
        session.save("a.jfr", io.BytesIO(b"x"))
        session.save("b.jfr", io.BytesIO(b"y"))
        session.set_current("a.jfr")
        counter = _Counter()
        session.on_recording_changed(counter)
        unlink = Path.unlink

        def failing_unlink(path: Path, missing_ok: bool = False) -> None:
            if path.name == "b.jfr":
                raise PermissionError(13, "Permission denied", str(path))
            unlink(path, missing_ok=missing_ok)

        monkeypatch.setattr(Path, "unlink", failing_unlink)

        with pytest.raises(PermissionError):
            session.delete_all()

        assert counter.calls == 1
        assert session._current is None
        assert session.names() == ["b.jfr"]
