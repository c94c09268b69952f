"""Tests for blockfleet.engine.fleet — one killer plus idle sessions."""
import asyncio

import pytest

from blockfleet.engine.fleet import FleetSupervisor
from blockfleet.engine.primitives import Role, SessionState
from tests.conftest import FakeFactory, makeConfig, waitFor


def make_configs(idle=4):
    return [makeConfig("Slayer", Role.KILLER, commanders=("Boss",))] + [
        makeConfig(f"IdleBot{n}") for n in range(1, idle + 1)
    ]


# -----------------------------------------------------------------------
# TestFleet
# -----------------------------------------------------------------------

class TestFleet:
    def test_roles(self):
        fleet = FleetSupervisor(make_configs(), FakeFactory())
        assert fleet.killer.name == "Slayer"
        assert [s.name for s in fleet.idlers] == [f"IdleBot{n}" for n in range(1, 5)]
        assert len(fleet.sessions) == 5

    def test_no_killer(self):
        fleet = FleetSupervisor([makeConfig("IdleBot1")], FakeFactory())
        assert fleet.killer is None

    @pytest.mark.asyncio
    async def test_start_connects_every_session(self):
        factory = FakeFactory()
        fleet = FleetSupervisor(make_configs(), factory)

        await fleet.start()
        assert factory.calls == 5
        assert {c.username for c in factory.connections} == {
            "Slayer",
            "IdleBot1",
            "IdleBot2",
            "IdleBot3",
            "IdleBot4",
        }
        assert all(s.state is SessionState.CONNECTING for s in fleet.sessions)
        await fleet.shutdown()

    @pytest.mark.asyncio
    async def test_one_session_failure_is_isolated(self):
        factory = FakeFactory()
        fleet = FleetSupervisor(make_configs(), factory)
        await fleet.start()

        for conn in factory.connections:
            conn.admit()

        await waitFor(lambda: all(s.state is SessionState.ACTIVE for s in fleet.sessions))

        byName = {c.username: c for c in factory.connections}
        byName["IdleBot2"].kickedEvent.emit("spam")

        states = {s.name: s.state for s in fleet.sessions}
        assert states.pop("IdleBot2") is SessionState.RECONNECTING
        assert all(state is SessionState.ACTIVE for state in states.values())
        assert all(s.reconnectAttempts == 0 for s in fleet.sessions if s.name != "IdleBot2")
        await fleet.shutdown()

    @pytest.mark.asyncio
    async def test_start_exception_does_not_stop_others(self):
        factory = FakeFactory()
        fleet = FleetSupervisor(make_configs(idle=2), factory)

        async def broken():
            raise RuntimeError("bad session")

        fleet.sessions[1].start = broken
        await fleet.start()
        assert factory.calls == 2
        await fleet.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown(self):
        factory = FakeFactory()
        fleet = FleetSupervisor(make_configs(), factory)
        await fleet.start()

        await fleet.shutdown()
        assert all(s.state is SessionState.SHUTDOWN for s in fleet.sessions)
        assert all(c.listenerCount() == 0 for c in factory.connections)
        assert all(c.quitReasons == ["Shutting down"] for c in factory.connections)

    @pytest.mark.asyncio
    async def test_shutdown_grace_expires(self):
        def setup(conn):
            async def quit(reason=""):
                await asyncio.sleep(10)

            conn.quit = quit

        fleet = FleetSupervisor(make_configs(idle=1), FakeFactory(setup=setup))
        await fleet.start()

        await asyncio.wait_for(fleet.shutdown(grace=0.05), 1)
        assert all(s.state is SessionState.SHUTDOWN for s in fleet.sessions)

    @pytest.mark.asyncio
    async def test_report(self):
        fleet = FleetSupervisor(make_configs(idle=1), FakeFactory())
        fleet.report()
