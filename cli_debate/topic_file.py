"""Markdown topic files with optional YAML frontmatter."""

from pathlib import Path

import frontmatter

_KNOWN_KEYS = ("rounds", "challenger", "defender", "moderator")


def parse_topic_file(file_path: Path) -> tuple[str, dict]:
    """Parse a markdown topic file.

    Returns:
        (topic, overrides) where topic is the body text and overrides holds
        whichever of rounds/challenger/defender/moderator the frontmatter
        sets. Unknown frontmatter keys are ignored.

    Raises:
        ValueError: If the frontmatter rounds value is not an integer.
    """
    post = frontmatter.load(str(file_path))
    topic = post.content.strip()
    overrides = {k: post.metadata[k] for k in _KNOWN_KEYS if k in post.metadata}
    if "rounds" in overrides:
        try:
            overrides["rounds"] = int(overrides["rounds"])
        except (TypeError, ValueError):
            raise ValueError(f"frontmatter 'rounds' must be an integer, got {overrides['rounds']!r}") from None
    return topic, overrides
