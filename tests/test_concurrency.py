"""
Tests for the bounded concurrency runner.
"""
import asyncio

import pytest

from rtm_service.services.concurrency import run_bounded


def test_every_item_is_processed_with_at_most_limit_in_flight():
    in_flight = 0
    max_in_flight = 0
    processed = []
    
    async def worker(item):
        nonlocal in_flight, max_in_flight
        in_flight += 1
        max_in_flight = max(max_in_flight, in_flight)
        await asyncio.sleep(0.01)
        processed.append(item)
        in_flight -= 1
    
    failures = asyncio.run(run_bounded(range(20), worker, limit=5))
    
    assert failures == []
    assert sorted(processed) == list(range(20))
    assert max_in_flight == 5


def test_failure_of_one_item_does_not_stop_the_others():
    processed = []
    
    async def worker(item):
        await asyncio.sleep(0)
        if item == 3:
            raise RuntimeError("boom")
        processed.append(item)
    
    failures = asyncio.run(run_bounded([1, 2, 3, 4, 5, 6], worker, limit=2))
    
    assert sorted(processed) == [1, 2, 4, 5, 6]
    assert len(failures) == 1
    assert failures[0].index == 2
    assert failures[0].item == 3
    assert isinstance(failures[0].error, RuntimeError)


def test_limit_larger_than_item_count():
    processed = []
    
    async def worker(item):
        processed.append(item)
    
    assert asyncio.run(run_bounded([1, 2], worker, limit=10)) == []
    assert sorted(processed) == [1, 2]


def test_empty_input():
    async def worker(item):
        raise AssertionError("worker should not be called")
    
    assert asyncio.run(run_bounded([], worker)) == []


def test_limit_must_be_positive():
    async def worker(item):
        pass
    
    with pytest.raises(ValueError):
        asyncio.run(run_bounded([1], worker, limit=0))
