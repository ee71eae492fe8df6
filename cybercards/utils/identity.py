"""Display attributes for anonymous users and millisecond timestamps."""

import random
import time

VERBS = (
    "running", "sleeping", "dancing", "jumping", "flying",
    "swimming", "climbing", "diving", "prowling", "soaring",
    "dashing", "gliding", "hopping", "leaping", "prancing",
    "racing", "sailing", "skating", "sliding", "sprinting",
)  # fmt: skip

ANIMALS = (
    "coyote", "turtle", "eagle", "dolphin", "panda",
    "tiger", "penguin", "koala", "wolf", "lion",
    "fox", "owl", "bear", "hawk", "deer",
    "rabbit", "lynx", "otter", "seal", "raven",
)  # fmt: skip

SPRITES = (
    "🦊", "🐯", "🦁", "🐮", "🐷", "🐸", "🐙", "🦑",
    "🦈", "🐠", "🐳", "🐋", "🦕", "🦖", "🐢", "🦎",
    "🐍", "🦜", "🦩", "🦚", "🦉", "🦅", "🦄", "🐝",
    "🦋", "🐌", "🐛", "🦗", "🐞", "🐜", "🕷️", "🦂",
)  # fmt: skip

USERNAME_COLOR_COUNT = 12


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def generate_username() -> str:
    """Random "verb-animal" display name, e.g. "gliding-otter"."""
    return f"{random.choice(VERBS)}-{random.choice(ANIMALS)}"


def random_sprite() -> str:
    return random.choice(SPRITES)


def username_color(username: str) -> str:
    """CSS class for a username; stable for the same name.

    Uses the 32-bit string hash the browser client computes, so server and
    client agree on the color.
    """
    if not username:
        return ""
    value = 0
    for char in username:
        value = (ord(char) + ((value << 5) - value)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return f"username-color-{abs(value) % USERNAME_COLOR_COUNT + 1}"
