from anyio import current_time
from contextlib import aclosing
from pytest import approx, mark

from mavlink_monitor.utils import looks_like_flight_controller_vid_pid_pair, periodic


@mark.parametrize(
    "vid,pid,expected",
    [
        (0x1209, 0x5740, True),
        (0x2DAE, 0x1016, True),
        (0x0403, 0x6015, True),
        (0x10C4, 0xEA60, True),
        (0x1209, 0x0001, False),
        (0x046D, 0xC52B, False),
        (None, None, False),
    ],
)
def test_looks_like_flight_controller(vid, pid, expected: bool):
    assert looks_like_flight_controller_vid_pid_pair(vid, pid) is expected


async def test_periodic(autojump_clock):
    start = current_time()
    elapsed: list[float] = []

    async with aclosing(periodic(2)) as ticks:  # type: ignore
        async for _ in ticks:
            elapsed.append(current_time() - start)
            if len(elapsed) == 3:
                break

    assert elapsed == [approx(0), approx(2), approx(4)]
