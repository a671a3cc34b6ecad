"""Extraction of hypotheses embedded in assistant text.

Research answers carry a region delimited by ``<!-- HYPOTHESES_START -->`` and
``<!-- HYPOTHESES_END -->`` holding blocks of the shape::

    **Hypothesis 1: Title**
    Description, possibly over several lines.

The region is scanned line by line. A block is accepted only once it is
followed by another heading or by the end marker, so a block cut off by an
interrupted stream is dropped instead of persisted half-written.
"""

import enum
import logging
from collections.abc import Iterable
from typing import Any, NamedTuple
from uuid import UUID

from app.exceptions.chat import InvalidHypothesisIdError
from app.schemas.hypothesis import HypothesisData
from models.hypothesis import HYPOTHESIS_ID_MAX_LENGTH

logger = logging.getLogger(__name__)

START_MARKER = "<!-- HYPOTHESES_START -->"
END_MARKER = "<!-- HYPOTHESES_END -->"
HEADING_PREFIX = "**Hypothesis "
HEADING_SUFFIX = "**"
ID_PREFIX = "hyp"


class _State(enum.Enum):
    SEEKING = "seeking"
    IN_BLOCK = "in_block"


class HypothesisRef(NamedTuple):
    """Components of a hypothesis id."""

    chat_id: UUID
    message_id: UUID
    ordinal: int


def make_hypothesis_id(chat_id: Any, message_id: Any, ordinal: int) -> str:
    return f"{ID_PREFIX}_{chat_id}_{message_id}_{ordinal}"


def parse_hypothesis_id(hypothesis_id: str) -> HypothesisRef:
    """Split ``hyp_<chatId>_<messageId>_<N>`` into its components.

    Raises:
        InvalidHypothesisIdError: If the id does not have that shape.
    """
    pieces = hypothesis_id.split("_")
    if len(pieces) != 4 or pieces[0] != ID_PREFIX:
        raise InvalidHypothesisIdError()

    _, chat_id, message_id, ordinal = pieces
    try:
        ref = HypothesisRef(UUID(chat_id), UUID(message_id), int(ordinal))
    except ValueError as e:
        raise InvalidHypothesisIdError() from e

    if ref.ordinal < 1:
        raise InvalidHypothesisIdError()
    return ref


def _parse_heading(line: str) -> tuple[int, str] | None:
    """Return (ordinal, title) when ``line`` is a hypothesis heading."""
    line = line.strip()
    if not (line.startswith(HEADING_PREFIX) and line.endswith(HEADING_SUFFIX)):
        return None
    inner = line[len(HEADING_PREFIX):-len(HEADING_SUFFIX)]
    number, sep, title = inner.partition(":")
    number = number.strip()
    title = title.strip()
    if not sep or not title or not (number.isascii() and number.isdigit()):
        return None
    ordinal = int(number)
    if ordinal < 1:
        return None
    return ordinal, title


def _region(text: str) -> tuple[str, bool] | None:
    start = text.find(START_MARKER)
    if start == -1:
        return None
    body_start = start + len(START_MARKER)
    end = text.find(END_MARKER, body_start)
    if end == -1:
        return text[body_start:], False
    return text[body_start:end], True


def extract_hypotheses(text: str, chat_id: Any, message_id: Any) -> list[HypothesisData]:
    """Parse the hypotheses region of ``text``.

    Returns an empty list when there is no region or it holds no complete
    block. Ids are derived from ``(chat_id, message_id, ordinal)``, so the
    same input always yields the same records.
    """
    region = _region(text or "")
    if region is None:
        return []
    body, terminated = region

    blocks: list[tuple[int, str, list[str]]] = []
    state = _State.SEEKING
    current: tuple[int, str, list[str]] | None = None

    for line in body.split("\n"):
        heading = _parse_heading(line)
        if state is _State.SEEKING:
            if heading:
                current = (heading[0], heading[1], [])
                state = _State.IN_BLOCK
        elif heading:
            blocks.append(current)
            current = (heading[0], heading[1], [])
        else:
            current[2].append(line)

    if state is _State.IN_BLOCK:
        if terminated:
            blocks.append(current)
        else:
            logger.info(f"Dropping truncated hypothesis {current[0]} of message {message_id}")

    hypotheses: list[HypothesisData] = []
    seen: set[int] = set()
    for ordinal, title, lines in blocks:
        if ordinal in seen:
            logger.warning(f"Duplicate hypothesis number {ordinal} in message {message_id}; keeping the first")
            continue
        seen.add(ordinal)

        hypothesis_id = make_hypothesis_id(chat_id, message_id, ordinal)
        if len(hypothesis_id) > HYPOTHESIS_ID_MAX_LENGTH:
            logger.warning(f"Skipping hypothesis {ordinal}: id exceeds {HYPOTHESIS_ID_MAX_LENGTH} characters")
            continue

        hypotheses.append(
            HypothesisData(
                id=hypothesis_id,
                title=title,
                description="\n".join(lines).strip(),
                order_index=ordinal,
            )
        )

    if not hypotheses:
        logger.info(f"Hypotheses markers found in message {message_id} but no complete block")
    return hypotheses


def hypotheses_from_parts(parts: Iterable[Any], chat_id: Any, message_id: Any) -> list[HypothesisData]:
    """Extract from the first text part that yields any hypotheses."""
    for part in parts or []:
        if isinstance(part, dict):
            part_type, text = part.get("type"), part.get("text")
        else:
            part_type, text = getattr(part, "type", None), getattr(part, "text", None)
        if part_type != "text" or not text:
            continue
        hypotheses = extract_hypotheses(text, chat_id, message_id)
        if hypotheses:
            return hypotheses
    return []
