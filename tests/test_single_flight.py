from __future__ import annotations

import asyncio

from warden_v1.services.single_flight import GLOBAL_KEY, SingleFlight


def test_claim_is_insert_if_absent() -> None:
    flights = SingleFlight()
    assert flights.claim(10) is True
    assert flights.claim(10) is False
    assert flights.claim(GLOBAL_KEY) is True
    assert flights.keys() == {10, GLOBAL_KEY}
    flights.release(10)
    assert 10 not in flights
    assert flights.claim(10) is True


def test_hold_releases_after_failure() -> None:
    flights = SingleFlight()

    async def run() -> None:
        async with flights.hold(10) as claimed:
            assert claimed is True
            assert flights.running(10)
            raise RuntimeError("boom")

    try:
        asyncio.run(run())
    except RuntimeError:
        pass
    assert flights.running(10) is False


def test_hold_does_not_release_someone_elses_claim() -> None:
    flights = SingleFlight()
    flights.claim(10)

    async def run() -> bool:
        async with flights.hold(10) as claimed:
            return claimed

    assert asyncio.run(run()) is False
    assert flights.running(10) is True
