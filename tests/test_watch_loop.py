"""Tests for watch loop module."""

import io
import threading
from unittest.mock import Mock

import pytest

from src.relaunch.config import RelaunchConfig
from src.relaunch.event_source import MemoryEventSource
from src.relaunch.exceptions import (
    ArgumentError,
    NotRegularFileError,
    WaitError,
    WatchSetupError,
)
from src.relaunch.supervisor import Supervisor
from src.relaunch.watch_loop import LoopState, WatchLoop, print_header
from tests.conftest import wait_for


def make_files(tmp_path, *names):
    paths = []
    for name in names:
        path = tmp_path / name
        path.write_text(name)
        paths.append(path)
    return paths


def run_in_thread(loop):
    results = []
    errors = []

    def target():
        try:
            results.append(loop.run())
        except Exception as e:
            errors.append(e)

    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    return thread, results, errors


class TestPrintHeader:
    """Tests for print_header."""

    def test_format(self):
        stream = io.StringIO()
        print_header(["a.txt", "b.txt"], "make test", stream)
        assert stream.getvalue() == (
            "Files:\n"
            "    a.txt\n"
            "    b.txt\n"
            "Command: make test\n"
        )


class TestStart:
    """Tests for WatchLoop.start."""

    def test_registers_all_paths(self, tmp_path, config):
        paths = make_files(tmp_path, "a.txt", "b.txt")
        source = MemoryEventSource(config)
        loop = WatchLoop(source, Mock(spec=Supervisor), "true", paths, config, io.StringIO())

        loop.start()

        assert [t.path for t in source.targets] == [p.resolve() for p in paths]
        assert loop.state is LoopState.WATCHING

    def test_prints_header(self, tmp_path, config):
        paths = make_files(tmp_path, "a.txt")
        stream = io.StringIO()
        loop = WatchLoop(MemoryEventSource(config), Mock(spec=Supervisor), "true", paths, config, stream)

        loop.start()

        assert stream.getvalue() == f"Files:\n    {paths[0]}\nCommand: true\n"

    def test_header_disabled(self, tmp_path, config):
        config.show_header = False
        paths = make_files(tmp_path, "a.txt")
        stream = io.StringIO()
        loop = WatchLoop(MemoryEventSource(config), Mock(spec=Supervisor), "true", paths, config, stream)

        loop.start()

        assert stream.getvalue() == ""

    def test_no_paths(self, config):
        loop = WatchLoop(MemoryEventSource(config), Mock(spec=Supervisor), "true", [], config)

        with pytest.raises(ArgumentError):
            loop.start()

        assert loop.state is LoopState.EXITING_ON_ERROR

    def test_directory_fails_fast(self, tmp_path, config):
        a, c = make_files(tmp_path, "a.txt", "c.txt")
        directory = tmp_path / "dir"
        directory.mkdir()
        source = MemoryEventSource(config)
        stream = io.StringIO()
        loop = WatchLoop(source, Mock(spec=Supervisor), "true", [a, directory, c], config, stream)

        with pytest.raises(NotRegularFileError):
            loop.run()

        assert [t.path for t in source.targets] == [a.resolve()]
        assert loop.state is LoopState.EXITING_ON_ERROR
        assert stream.getvalue() == ""

    def test_missing_file(self, tmp_path, config):
        loop = WatchLoop(
            MemoryEventSource(config), Mock(spec=Supervisor), "true",
            [tmp_path / "missing.txt"], config, io.StringIO(),
        )

        with pytest.raises(WatchSetupError):
            loop.start()


class TestRun:
    """Tests for WatchLoop.run."""

    def test_each_event_triggers_once(self, tmp_path, config):
        a, b = make_files(tmp_path, "a.txt", "b.txt")
        source = MemoryEventSource(config)
        supervisor = Mock(spec=Supervisor)
        loop = WatchLoop(source, supervisor, "make", [a, b], config, io.StringIO())
        loop.start()

        source.fire(a)
        source.fire(b)
        source.fire(a)
        thread, results, errors = run_in_thread(loop)

        assert wait_for(lambda: supervisor.trigger.call_count == 3)
        loop.stop()
        thread.join(timeout=5)

        assert results == [0]
        assert errors == []
        assert all(c.args == ("make",) for c in supervisor.trigger.call_args_list)
        assert loop.trigger_count == 3
        assert loop.state is LoopState.STOPPED

    def test_empty_command_stops(self, tmp_path, config):
        paths = make_files(tmp_path, "a.txt")
        source = MemoryEventSource(config)
        supervisor = Mock(spec=Supervisor)
        loop = WatchLoop(source, supervisor, "", paths, config, io.StringIO())
        loop.start()

        source.fire(paths[0])

        assert loop.run() == 0
        assert loop.state is LoopState.EXITING_ON_EMPTY_COMMAND
        supervisor.trigger.assert_not_called()

    def test_empty_command_without_sentinel(self, tmp_path, config):
        config.stop_on_empty_command = False
        paths = make_files(tmp_path, "a.txt")
        source = MemoryEventSource(config)
        supervisor = Mock(spec=Supervisor)
        loop = WatchLoop(source, supervisor, "", paths, config, io.StringIO())
        loop.start()

        source.fire(paths[0])
        thread, results, errors = run_in_thread(loop)

        assert wait_for(lambda: supervisor.trigger.call_count == 1)
        loop.stop()
        thread.join(timeout=5)
        supervisor.trigger.assert_called_once_with("")

    def test_wait_error_propagates(self, tmp_path, config):
        paths = make_files(tmp_path, "a.txt")
        source = MemoryEventSource(config)
        loop = WatchLoop(source, Mock(spec=Supervisor), "true", paths, config, io.StringIO())
        loop.start()

        source.fail(WaitError("read failed", errno=5))

        with pytest.raises(WaitError):
            loop.run()
        assert loop.state is LoopState.EXITING_ON_ERROR

    def test_stop_while_waiting(self, tmp_path, config):
        paths = make_files(tmp_path, "a.txt")
        loop = WatchLoop(MemoryEventSource(config), Mock(spec=Supervisor), "true", paths, config, io.StringIO())

        thread, results, errors = run_in_thread(loop)
        assert wait_for(lambda: loop.state is LoopState.WATCHING)
        loop.stop()
        thread.join(timeout=5)

        assert results == [0]

    def test_closing_source_after_stop(self, tmp_path, config):
        paths = make_files(tmp_path, "a.txt")
        source = MemoryEventSource(config)
        loop = WatchLoop(source, Mock(spec=Supervisor), "true", paths, config, io.StringIO())

        thread, results, errors = run_in_thread(loop)
        assert wait_for(lambda: loop.state is LoopState.WATCHING)
        loop.stop()
        source.close()
        thread.join(timeout=5)

        assert results == [0]
        assert errors == []

    def test_runs_command_for_each_write(self, tmp_path, config):
        watched, = make_files(tmp_path, "a.txt")
        out = tmp_path / "out.txt"
        source = MemoryEventSource(config)
        supervisor = Supervisor(config)
        loop = WatchLoop(source, supervisor, f"echo ran >> {out}", [watched], config, io.StringIO())
        thread, results, errors = run_in_thread(loop)
        assert wait_for(lambda: loop.state is LoopState.WATCHING)

        source.fire(watched)
        assert wait_for(lambda: out.exists() and len(out.read_text().splitlines()) == 1)
        assert supervisor.wait_idle(timeout=5)
        source.fire(watched)
        assert wait_for(lambda: out.exists() and len(out.read_text().splitlines()) == 2)

        loop.stop()
        thread.join(timeout=5)
        assert supervisor.stop(timeout=5)
        assert supervisor.current is None
