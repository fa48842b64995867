"""Tests for the sqls supervisor (SqlsClient) with a fake server process."""

import asyncio
from typing import Any

import pytest
import pytest_asyncio
from sqls_next_models import ConnectionConfig, QueryResult, Range

from sqls_next.client import ConnectionState, SqlsClient
from sqls_next.display import ResultView
from sqls_next.errors import (
    ConnectionClosed,
    ExecutableMissing,
    RemoteError,
    ServerNotRunning,
    StartFailed,
)
from sqls_next.lsp.jsonrpc import ErrorAction
from sqls_next.notifications import MessageType


class FakeProcess:
    """Stands in for LanguageServerProcess; answers executeCommand from a table."""

    def __init__(self, options, on_close, on_error, notifier):
        self.options = options
        self.on_close = on_close
        self.on_error = on_error
        self.notifier = notifier
        self.start_calls = 0
        self.stop_calls = 0
        self.restart_calls = 0
        self.start_error: Exception | None = None
        self.requests: list[tuple[str, Any]] = []
        self.notifications: list[tuple[str, Any]] = []
        self.responses: dict[str, Any] = {}
        self.command_errors: dict[str, Exception] = {}

    async def start(self):
        self.start_calls += 1
        if self.start_error is not None:
            raise self.start_error

    async def stop(self):
        self.stop_calls += 1

    async def restart(self):
        self.restart_calls += 1
        await self.stop()
        await self.start()

    async def send_request(self, method, params=None):
        self.requests.append((method, params))
        command = params["command"]
        if command in self.command_errors:
            raise self.command_errors[command]
        response = self.responses.get(command)
        if callable(response):
            return response(params["arguments"])
        return response

    async def send_notification(self, method, params=None):
        self.notifications.append((method, params))

    def commands(self) -> list[tuple[str, list]]:
        return [(p["command"], p["arguments"]) for m, p in self.requests]


class FakeFactory:
    def __init__(self):
        self.processes: list[FakeProcess] = []
        self.error: Exception | None = None
        self.start_error: Exception | None = None
        self.command_errors: dict[str, Exception] = {}

    def __call__(self, options, on_close, on_error, notifier):
        if self.error is not None:
            raise self.error
        process = FakeProcess(options, on_close, on_error, notifier)
        process.start_error = self.start_error
        process.command_errors = self.command_errors
        self.processes.append(process)
        return process

    @property
    def process(self) -> FakeProcess:
        return self.processes[-1]


@pytest.fixture
def factory():
    return FakeFactory()


@pytest.fixture
def client(store, settings, notifier, factory):
    client = SqlsClient(store, settings=settings, notifier=notifier, process_factory=factory)
    yield client
    client.dispose()


def add_connection(store, alias, driver="mysql"):
    store.upsert(ConnectionConfig(alias=alias, driver=driver, data_source_name=f"dsn-{alias}"))


async def close_and_settle(client: SqlsClient, process: FakeProcess) -> None:
    """Simulate an unexpected closure and wait for any automatic restart."""
    before = client._restart_task
    process.on_close()
    task = client._restart_task
    if task is not None and task is not before:
        await task


class TestStart:
    @pytest.mark.asyncio
    async def test_start_runs_and_pushes_configuration(self, client, factory):
        await client.start()

        assert client.state == ConnectionState.RUNNING
        assert client.is_running
        assert factory.process.start_calls == 1
        assert [m for m, _ in factory.process.notifications] == [
            "workspace/didChangeConfiguration"
        ]

    @pytest.mark.asyncio
    async def test_initialize_options_carry_current_connection(self, client, store, factory):
        add_connection(store, "main", "postgresql")

        await client.start()

        assert factory.process.options == {
            "connectionConfig": {
                "alias": "main",
                "driver": "postgresql",
                "dataSourceName": "dsn-main",
            }
        }

    @pytest.mark.asyncio
    async def test_start_is_noop_when_running(self, client, factory):
        await client.start()
        await client.start()

        assert len(factory.processes) == 1
        assert factory.process.start_calls == 1

    @pytest.mark.asyncio
    async def test_concurrent_starts_spawn_once(self, client, factory):
        await asyncio.gather(client.start(), client.start(), client.start())

        assert len(factory.processes) == 1
        assert factory.process.start_calls == 1

    @pytest.mark.asyncio
    async def test_missing_executable(self, client, factory, notifier):
        factory.error = ExecutableMissing("/opt/sqls/linux_amd64/sqls")

        with pytest.raises(ExecutableMissing):
            await client.start()

        assert client.state == ConnectionState.STOPPED
        errors = notifier.of(MessageType.ERROR)
        assert errors == [
            "sqls executable not found at: /opt/sqls/linux_amd64/sqls. "
            "Please ensure the sqls binary is installed."
        ]

    @pytest.mark.asyncio
    async def test_handshake_failure_raises_start_failed(self, client, factory, notifier):
        factory.start_error = ConnectionClosed("pipe broke")

        with pytest.raises(StartFailed):
            await client.start()

        assert client.state == ConnectionState.STOPPED
        assert "Failed to start language server: pipe broke" in notifier.of(MessageType.ERROR)

    @pytest.mark.asyncio
    async def test_configuration_push_failure_releases_process(self, client, store, factory):
        add_connection(store, "main")
        store.set_default("main")
        factory.command_errors["switchConnections"] = RemoteError(-32603, "cannot connect")

        with pytest.raises(StartFailed):
            await client.start()

        assert client.state == ConnectionState.STOPPED
        assert factory.process.stop_calls == 1


class TestStop:
    @pytest.mark.asyncio
    async def test_stop_returns_to_stopped(self, client, factory):
        await client.start()
        await client.stop()

        assert client.state == ConnectionState.STOPPED
        assert factory.process.stop_calls == 1

    @pytest.mark.asyncio
    async def test_stop_without_start_is_safe(self, client):
        await client.stop()

        assert client.state == ConnectionState.STOPPED

    @pytest.mark.asyncio
    async def test_start_after_stop_spawns_new_process(self, client, factory):
        await client.start()
        await client.stop()
        await client.start()

        assert len(factory.processes) == 2


class TestAutoRestart:
    @pytest.mark.asyncio
    async def test_closure_triggers_restart(self, client, factory):
        await client.start()

        await close_and_settle(client, factory.process)

        assert client.state == ConnectionState.RUNNING
        assert client.restart_count == 1
        assert factory.process.start_calls == 2

    @pytest.mark.asyncio
    async def test_sixth_closure_does_not_restart(self, client, factory, notifier):
        await client.start()
        process = factory.process

        for expected in range(1, 6):
            await close_and_settle(client, process)
            assert client.state == ConnectionState.RUNNING
            assert client.restart_count == expected

        await close_and_settle(client, process)

        assert client.state == ConnectionState.STOPPED
        assert process.start_calls == 6
        assert (
            "Language server has been restarted 5 times. Please check the server configuration."
            in notifier.of(MessageType.ERROR)
        )

    @pytest.mark.asyncio
    async def test_successful_start_resets_budget(self, client, factory):
        await client.start()
        process = factory.process
        for _ in range(6):
            await close_and_settle(client, process)
        assert client.state == ConnectionState.STOPPED

        await client.start()
        assert client.restart_count == 0

        await close_and_settle(client, process)

        assert client.state == ConnectionState.RUNNING
        assert client.restart_count == 1

    @pytest.mark.asyncio
    async def test_failed_auto_restart_leaves_stopped(self, client, factory):
        await client.start()
        factory.process.start_error = ConnectionClosed("spawn failed")

        await close_and_settle(client, factory.process)

        assert client.state == ConnectionState.STOPPED
        assert client.restart_count == 1

    @pytest.mark.asyncio
    async def test_failed_auto_restart_notifies(self, client, factory, notifier):
        await client.start()
        factory.process.start_error = ConnectionClosed("handshake crashed")

        await close_and_settle(client, factory.process)

        assert "Failed to restart language server: handshake crashed" in notifier.of(
            MessageType.ERROR
        )

    @pytest.mark.asyncio
    async def test_auto_restart_reselects_default(self, client, store, factory):
        add_connection(store, "main")
        store.set_default("main")
        await client.start()
        factory.process.requests.clear()

        await close_and_settle(client, factory.process)

        assert factory.process.commands() == [("switchConnections", ["main"])]

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_restart(self, client, factory):
        await client.start()
        factory.process.on_close()
        assert client.state == ConnectionState.STARTING

        await client.stop()
        await asyncio.sleep(0)

        assert client.state == ConnectionState.STOPPED
        assert factory.process.start_calls == 1


class TestManualRestart:
    @pytest.mark.asyncio
    async def test_restart_ignores_budget(self, client, factory):
        await client.start()
        process = factory.process
        for _ in range(6):
            await close_and_settle(client, process)

        await client.restart()

        assert client.state == ConnectionState.RUNNING
        assert process.restart_calls == 1
        assert client.restart_count == 5

    @pytest.mark.asyncio
    async def test_restart_without_process_starts(self, client, factory):
        await client.restart()

        assert client.state == ConnectionState.RUNNING
        assert len(factory.processes) == 1

    @pytest.mark.asyncio
    async def test_restart_failure_notifies_and_raises(self, client, factory, notifier):
        await client.start()
        factory.process.start_error = ConnectionClosed("gone")

        with pytest.raises(ConnectionClosed):
            await client.restart()

        assert client.state == ConnectionState.STOPPED
        assert "Failed to restart language server: gone" in notifier.of(MessageType.ERROR)


class TestTransportErrors:
    @pytest.mark.asyncio
    async def test_errors_below_threshold_continue(self, client, factory):
        await client.start()

        for count in (1, 2, 3):
            assert factory.process.on_error(ValueError("bad frame"), count) == ErrorAction.CONTINUE
        assert client.state == ConnectionState.RUNNING

    @pytest.mark.asyncio
    async def test_errors_over_threshold_shut_down(self, client, factory, notifier):
        await client.start()

        action = factory.process.on_error(ValueError("bad frame"), 4)

        assert action == ErrorAction.SHUTDOWN
        assert client.state == ConnectionState.STOPPED
        assert "Language server connection error: bad frame" in notifier.of(MessageType.ERROR)


class TestExecuteCommand:
    @pytest.mark.asyncio
    async def test_requires_running_server(self, client):
        with pytest.raises(ServerNotRunning, match="Language server is not started"):
            await client.execute_command("showDatabases")

    @pytest.mark.asyncio
    async def test_sends_execute_command(self, client, factory):
        await client.start()
        factory.process.responses["showDatabases"] = "a\nb\n"

        result = await client.execute_command("showDatabases")

        assert result == "a\nb\n"
        assert factory.process.requests[-1] == (
            "workspace/executeCommand",
            {"command": "showDatabases", "arguments": []},
        )

    @pytest.mark.asyncio
    async def test_failure_notifies_and_raises(self, client, factory, notifier):
        await client.start()
        factory.process.command_errors["showTables"] = RemoteError(-32603, "no database")

        with pytest.raises(RemoteError):
            await client.execute_command("showTables")

        assert notifier.of(MessageType.ERROR) == [
            "Failed to execute server command showTables: no database"
        ]

    @pytest.mark.asyncio
    async def test_suppressed_server_message_is_filtered(self, client, notifier):
        notifier.show_error_message("sqls: no database connection")

        assert notifier.messages == []


class TestConfiguration:
    @pytest.mark.asyncio
    async def test_payload_lists_all_connections(self, client, store, factory, settings):
        add_connection(store, "a", "mysql")
        add_connection(store, "b", "sqlite3")
        await client.start()

        method, params = factory.process.notifications[-1]

        assert method == "workspace/didChangeConfiguration"
        assert params == {
            "settings": {
                "sqls": {
                    "lowercaseKeywords": settings.lowercase_keywords,
                    "connections": [
                        {"alias": "a", "driver": "mysql", "dataSourceName": "dsn-a"},
                        {"alias": "b", "driver": "sqlite3", "dataSourceName": "dsn-b"},
                    ],
                }
            }
        }

    @pytest.mark.asyncio
    async def test_switches_to_default_when_requested(self, client, store, factory):
        add_connection(store, "a")
        add_connection(store, "b")
        store.set_default("b")
        await client.start()
        factory.process.requests.clear()

        await client.did_change_configuration(switch_connection=True)

        assert factory.process.commands() == [("switchConnections", ["b"])]

    @pytest.mark.asyncio
    async def test_no_switch_without_flag(self, client, store, factory):
        add_connection(store, "a")
        store.set_default("a")
        await client.start()
        factory.process.requests.clear()

        await client.did_change_configuration()

        assert factory.process.commands() == []

    @pytest.mark.asyncio
    async def test_dangling_default_is_not_switched_to(self, client, store, factory):
        add_connection(store, "a")
        store.set_default("gone")
        await client.start()

        assert factory.process.commands() == []

    @pytest.mark.asyncio
    async def test_noop_when_stopped(self, client, factory):
        await client.did_change_configuration(True)

        assert factory.processes == []


class TestIntrospection:
    @pytest_asyncio.fixture
    async def running(self, client, store, factory):
        add_connection(store, "main")
        add_connection(store, "other")
        store.set_default("main")
        await client.start()
        factory.process.requests.clear()
        return factory.process

    @pytest.mark.asyncio
    async def test_get_databases_switches_and_restores(self, client, running):
        running.responses["showDatabases"] = "db1\n  db2 \n\n"

        databases = await client.get_databases("other")

        assert databases == ["db1", "db2"]
        assert running.commands() == [
            ("switchConnections", ["other"]),
            ("showDatabases", []),
            ("switchConnections", ["main"]),
        ]

    @pytest.mark.asyncio
    async def test_get_databases_of_current_does_not_restore(self, client, running):
        running.responses["showDatabases"] = "db1"

        await client.get_databases("main")

        assert running.commands() == [
            ("switchConnections", ["main"]),
            ("showDatabases", []),
        ]

    @pytest.mark.asyncio
    async def test_restores_even_when_listing_fails(self, client, running):
        running.command_errors["showDatabases"] = RemoteError(-32603, "denied")

        with pytest.raises(RemoteError):
            await client.get_databases("other")

        assert running.commands()[-1] == ("switchConnections", ["main"])

    @pytest.mark.asyncio
    async def test_get_tables_strips_scope_prefix(self, client, running):
        running.responses["showTables"] = "shop.orders\nshop.users\nplain\n"

        tables = await client.get_tables("other", "shop")

        assert tables == ["orders", "users", "plain"]
        assert running.commands() == [
            ("switchConnections", ["other"]),
            ("switchDatabase", ["shop"]),
            ("showTables", ["shop"]),
            ("switchConnections", ["main"]),
        ]

    @pytest.mark.asyncio
    async def test_get_tables_without_database(self, client, running):
        running.responses["showTables"] = "t1\nt2"

        tables = await client.get_tables("main")

        assert tables == ["t1", "t2"]
        assert ("showTables", []) in running.commands()

    @pytest.mark.asyncio
    async def test_non_string_listing_is_empty(self, client, running):
        running.responses["showDatabases"] = None

        assert await client.get_current_databases() == []


class TestExecuteQuery:
    @pytest.fixture
    def view(self):
        return ResultView()

    @pytest.fixture
    def query_client(self, store, settings, notifier, factory, view):
        client = SqlsClient(
            store,
            settings=settings,
            notifier=notifier,
            result_view=view,
            process_factory=factory,
        )
        yield client
        client.dispose()

    @pytest.mark.asyncio
    async def test_sends_file_uri_and_range(self, query_client, factory, tmp_path):
        await query_client.start()
        factory.process.responses["executeQuery"] = {"columns": ["n"], "rows": [[1]]}
        sql_file = tmp_path / "q.sql"
        sql_file.write_text("SELECT 1;\n")

        result = await query_client.execute_query(sql_file, Range.from_lines(0, 0, 1, 0))

        command, args = factory.process.commands()[-1]
        assert command == "executeQuery"
        assert args == [
            sql_file.resolve().as_uri(),
            "-show-json",
            {"start": {"line": 0, "character": 0}, "end": {"line": 1, "character": 0}},
            False,
        ]
        assert isinstance(result, QueryResult)
        assert result.rows == [{"n": 1}]

    @pytest.mark.asyncio
    async def test_result_is_shown_in_view(self, query_client, factory, view):
        await query_client.start()
        factory.process.responses["executeQuery"] = {"rows_affected": 2}

        await query_client.execute_query("file:///tmp/q.sql", Range.from_lines(3), cursor_only=True)

        assert view.current is not None
        assert view.current.rows_affected == 2
        assert factory.process.commands()[-1][1][3] is True

    @pytest.mark.asyncio
    async def test_error_is_shown_and_raised(self, query_client, factory, view):
        await query_client.start()
        factory.process.command_errors["executeQuery"] = RemoteError(-32603, "syntax error")

        with pytest.raises(RemoteError):
            await query_client.execute_query("file:///tmp/q.sql", Range.from_lines(0))

        assert view.current is None


class TestDispose:
    def test_dispose_restores_notifier(self, store, settings, notifier, factory):
        client = SqlsClient(store, settings=settings, notifier=notifier, process_factory=factory)
        assert client.message_interceptor.is_active

        client.dispose()

        assert not client.message_interceptor.is_active
        assert "show_error_message" not in vars(notifier)
