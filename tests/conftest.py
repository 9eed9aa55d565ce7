import os
import sys

import pytest


def _project_root() -> str:
    here = os.path.dirname(__file__)
    return os.path.abspath(os.path.join(here, os.pardir))


# Ensure project root is importable (so `import sync` works in tests)
root = _project_root()
if root not in sys.path:
    sys.path.insert(0, root)


def performance(time: str, screen: str = "1") -> dict:
    return {"time": time, "screen": screen, "buyUrl": f"https://example.test/buy/{time}"}


def event(event_id: int, date: str, performances: list[dict]) -> dict:
    return {
        "eventId": event_id,
        "date": date,
        "movieNew": False,
        "moviePath": f"/film/{event_id}",
        "webUrl": f"https://example.test/event/{event_id}",
        "performances": performances,
    }


def movie(movie_id: int, name: str, events: list[dict]) -> dict:
    return {
        "movieId": movie_id,
        "name": name,
        "isPurchasable": True,
        "firstPerformance": "2024-03-01",
        "moviePosterMedium": None,
        "events": events,
    }


@pytest.fixture
def make_feed():
    """Build an N×M×K feed: n movies, m events each, k performances each."""

    def _make(n: int, m: int, k: int) -> list[dict]:
        return [
            movie(
                100 + i,
                f"Film {i}",
                [
                    event(
                        1000 * (i + 1) + j,
                        f"2024-03-{j + 1:02d}",
                        [performance(f"{15 + p}:30") for p in range(k)],
                    )
                    for j in range(m)
                ],
            )
            for i in range(n)
        ]

    return _make
