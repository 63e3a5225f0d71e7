"""
Shared fixtures data for the Soulballot test suites.
"""

ADMIN = "0xPQ" + "ad" * 32
ALICE = "0xPQ" + "a1" * 32
BOB = "0xPQ" + "b2" * 32
CAROL = "0xPQ" + "c3" * 32
DAVE = "0xPQ" + "d4" * 32
EVE = "0xPQ" + "e5" * 32
TRAD = "0x" + "ab" * 20
MALLORY = "0x" + "9f" * 20
SYBIL = "0x" + "5e" * 20

HOUR = 3600


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds
