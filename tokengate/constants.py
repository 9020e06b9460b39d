"""
Limiter Constants

Key layout, identifier layout and sentinel values shared across layers.
"""

# Subaccount used when the caller does not name one
DEFAULT_SUBACCOUNT = "default"

# Identifier layout: [42 bit timestamp][5 bit lane][5 bit counter]
# 52 bits total, so ids stay exact when Redis stores them as double scores.
ID_EPOCH_MS = 1689206400000
ID_TIMESTAMP_BITS = 42
ID_LANE_BITS = 5
ID_COUNTER_BITS = 5

MAX_LANE = (1 << ID_LANE_BITS) - 1
MAX_COUNTER = (1 << ID_COUNTER_BITS) - 1

# Ordered set names, one per (resource, subaccount)
INPUT_TOKENS_SET = "input-tokens"
OUTPUT_TOKENS_SET = "output-tokens"
REQUESTS_SET = "requests"

# Shared counter used to hand out process lanes
LANE_COUNTER_KEY = "lanes"

MILLISECONDS_PER_SECOND = 1000
MILLISECONDS_PER_MINUTE = 60 * MILLISECONDS_PER_SECOND
