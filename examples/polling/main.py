from __future__ import annotations
import itertools
import logging
import random

from retryflow import Cont, Halt, exponential_backoff, linear_backoff, retry, retry_while, wait

logging.basicConfig(level=logging.DEBUG, format="%(name)s %(message)s")

attempts = itertools.count(1)


def call_service():
    """Pretend remote call: fails with RuntimeError or returns an error tuple now and then."""
    roll = random.random()
    if roll < 0.3:
        raise RuntimeError("connection reset")
    if roll < 0.6:
        return ("error", "503 service unavailable")
    return ("ok", {"attempt": next(attempts)})


def main() -> None:
    # 1) retry: exponential, fuzzed by 10%, capped at 200ms, give up after 2s
    delays = exponential_backoff(20).randomize().cap(200).expiry(2_000)
    result = retry(
        {"with": delays},
        call_service,
        on_exhausted=lambda last: ("gave up", repr(last)),
    )
    print("retry ->", result)

    # 2) retry_while with an accumulator: collect 3 pages, at most 5 tries
    def fetch_page(pages):
        pages = pages + [f"page-{len(pages) + 1}"]
        return Halt(pages) if len(pages) == 3 else Cont(pages)

    print("retry_while ->", retry_while({"with": linear_backoff(10, 10).take(5)}, fetch_page, acc=[]))

    # 3) wait: poll until a job is done
    status = iter([None, None, "done"])
    print("wait ->", wait(linear_backoff(10, 5).take(5), lambda: next(status)))


if __name__ == "__main__":
    main()
