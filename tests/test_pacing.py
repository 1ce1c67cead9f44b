from types import SimpleNamespace

import pytest

from bot.tasks.pacing import FixedDelay, TokenBucket, build_pacer


class FakeTime:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def clock(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


async def test_fixed_delay_sleeps_every_time():
    t = FakeTime()
    pacer = FixedDelay(0.25, sleep=t.sleep)
    for _ in range(3):
        await pacer.wait()
    assert t.sleeps == [0.25, 0.25, 0.25]


async def test_fixed_delay_of_zero_never_sleeps():
    t = FakeTime()
    await FixedDelay(0, sleep=t.sleep).wait()
    assert t.sleeps == []


async def test_token_bucket_allows_burst_then_throttles():
    t = FakeTime()
    bucket = TokenBucket(rate=2.0, burst=2, clock=t.clock, sleep=t.sleep)

    await bucket.wait()
    await bucket.wait()
    assert t.sleeps == []

    await bucket.wait()
    assert t.sleeps == [pytest.approx(0.5)]


async def test_token_bucket_refills_while_idle():
    t = FakeTime()
    bucket = TokenBucket(rate=1.0, burst=1, clock=t.clock, sleep=t.sleep)
    await bucket.wait()
    t.now += 5
    await bucket.wait()
    assert t.sleeps == []


def test_token_bucket_rejects_bad_rate():
    with pytest.raises(ValueError):
        TokenBucket(rate=0)


def test_build_pacer_follows_settings():
    fixed = build_pacer(SimpleNamespace(pacing="fixed", pacing_delay=1.0))
    bucket = build_pacer(SimpleNamespace(pacing="bucket", bucket_rate=3.0, bucket_burst=4))
    assert isinstance(fixed, FixedDelay) and fixed.seconds == 1.0
    assert isinstance(bucket, TokenBucket) and bucket.burst == 4
