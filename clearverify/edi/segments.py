"""X12 segment tokenizing and envelope validation.

The ISA segment is fixed width: 105 characters with the element separator
at index 3, the repetition separator (ISA11) at index 82, the component
separator (ISA16) at index 104 and the segment terminator immediately
after it at index 105.

Envelope structure:
- ISA / IEA: Interchange (control number in ISA13 / IEA02)
- GS / GE: Functional group (control number in GS06 / GE02)
- ST / SE: Transaction set (control number in ST02 / SE02, SE01 = segment count)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_ELEMENT_SEPARATOR = "*"
DEFAULT_COMPONENT_SEPARATOR = ":"
DEFAULT_REPETITION_SEPARATOR = "^"
DEFAULT_SEGMENT_TERMINATOR = "~"

ISA_LENGTH = 105
ISA_ELEMENT_COUNT = 16


@dataclass
class EDISegment:
    """Represents an EDI segment."""

    id: str
    elements: list[str]

    @classmethod
    def parse(cls, line: str, element_sep: str = "*") -> "EDISegment":
        """Parse a segment line."""
        parts = line.strip().split(element_sep)
        return cls(id=parts[0], elements=parts[1:] if len(parts) > 1 else [])

    def get(self, index: int, default: str = "") -> str:
        """Get element at index (0 = first element after the id)."""
        if 0 <= index < len(self.elements):
            return self.elements[index]
        return default

    def components(self, index: int, component_sep: str = ":") -> list[str]:
        """Split a composite element into its components."""
        value = self.get(index)
        return value.split(component_sep) if value else []

    def repetitions(self, index: int, repetition_sep: str = "^") -> list[str]:
        """Split a repeating element, dropping empty repeats."""
        return [value for value in self.get(index).split(repetition_sep) if value]


@dataclass(frozen=True)
class Separators:
    element: str = DEFAULT_ELEMENT_SEPARATOR
    component: str = DEFAULT_COMPONENT_SEPARATOR
    repetition: str = DEFAULT_REPETITION_SEPARATOR
    segment: str = DEFAULT_SEGMENT_TERMINATOR


def clean_content(content: str) -> str:
    """Drop line breaks some trading partners insert between segments."""
    return content.replace("\n", "").replace("\r", "").strip()


def detect_separators(content: str) -> Separators:
    """Detect separators from the fixed-width ISA segment.

    Falls back to the default separators when the ISA segment is missing
    or not fixed width.
    """
    if not content.startswith("ISA") or len(content) < 4:
        return Separators()

    element_sep = content[3]
    if len(content) > ISA_LENGTH and content[:ISA_LENGTH].count(element_sep) == ISA_ELEMENT_COUNT:
        isa11 = content[:ISA_LENGTH].split(element_sep)[11]
        return Separators(
            element=element_sep,
            component=content[ISA_LENGTH - 1],
            segment=content[ISA_LENGTH],
            # 004010 and earlier carry a standards id ("U") in ISA11
            repetition=(
                isa11
                if len(isa11) == 1 and not isa11.isalnum()
                else DEFAULT_REPETITION_SEPARATOR
            ),
        )

    logger.debug("ISA segment is not fixed width, using default separators")
    return Separators(element=element_sep)


def split_segments(content: str, separators: Separators) -> list[EDISegment]:
    """Split content into segment objects."""
    segments = []
    for line in content.split(separators.segment):
        line = line.strip()
        if line:
            segments.append(EDISegment.parse(line, separators.element))
    return segments


def tokenize(content: str) -> tuple[Separators, list[EDISegment]]:
    """Detect separators and split an X12 message into segments."""
    content = clean_content(content)
    separators = detect_separators(content)
    return separators, split_segments(content, separators)


def validate_structure(content: str) -> list[str]:
    """Check the envelope of an X12 message.

    Validates header presence, trailing terminator, balanced ISA/IEA,
    GS/GE and ST/SE pairs, matching control numbers and SE01 segment
    counts. Does not look inside transaction sets.

    Args:
        content: Raw X12 message

    Returns:
        List of structural errors (empty if the envelope is valid)
    """
    errors: list[str] = []
    content = clean_content(content)

    if not content:
        return ["Empty message"]

    if not content.startswith("ISA"):
        errors.append("Missing ISA header")

    separators = detect_separators(content)
    if not content.endswith(separators.segment):
        errors.append(
            f"Message must end with segment terminator ({separators.segment})"
        )

    segments = split_segments(content, separators)
    counts: dict[str, int] = {}
    for segment in segments:
        counts[segment.id] = counts.get(segment.id, 0) + 1

    for header, trailer in (("ISA", "IEA"), ("GS", "GE"), ("ST", "SE")):
        if counts.get(header, 0) != counts.get(trailer, 0):
            errors.append(f"{header}/{trailer} count mismatch")

    errors.extend(_check_control_numbers(segments))
    return errors


def _check_control_numbers(segments: list[EDISegment]) -> list[str]:
    """Walk the envelopes pairing headers with trailers."""
    errors: list[str] = []
    isa: EDISegment | None = None
    gs: EDISegment | None = None
    st_index: int | None = None
    groups_in_interchange = 0
    sets_in_group = 0

    for index, segment in enumerate(segments):
        seg_id = segment.id

        if seg_id == "ISA":
            isa = segment
            groups_in_interchange = 0

        elif seg_id == "GS":
            gs = segment
            sets_in_group = 0
            groups_in_interchange += 1

        elif seg_id == "ST":
            st_index = index
            sets_in_group += 1

        elif seg_id == "SE":
            if st_index is None:
                errors.append("SE without matching ST")
                continue
            st = segments[st_index]
            if segment.get(1) != st.get(1):
                errors.append(
                    f"ST/SE control number mismatch: {st.get(1)} != {segment.get(1)}"
                )
            actual = index - st_index + 1
            if segment.get(0) != str(actual):
                errors.append(
                    f"SE segment count {segment.get(0) or 'missing'} "
                    f"does not match actual count {actual}"
                )
            st_index = None

        elif seg_id == "GE":
            if gs is None:
                errors.append("GE without matching GS")
                continue
            if segment.get(1) != gs.get(5):
                errors.append(
                    f"GS/GE control number mismatch: {gs.get(5)} != {segment.get(1)}"
                )
            if segment.get(0) != str(sets_in_group):
                errors.append(
                    f"GE transaction set count {segment.get(0) or 'missing'} "
                    f"does not match actual count {sets_in_group}"
                )
            gs = None

        elif seg_id == "IEA":
            if isa is None:
                errors.append("IEA without matching ISA")
                continue
            if segment.get(1) != isa.get(12):
                errors.append(
                    f"ISA/IEA control number mismatch: {isa.get(12)} != {segment.get(1)}"
                )
            if segment.get(0) != str(groups_in_interchange):
                errors.append(
                    f"IEA group count {segment.get(0) or 'missing'} "
                    f"does not match actual count {groups_in_interchange}"
                )
            isa = None

    if st_index is not None:
        errors.append("Transaction set is not closed by SE")

    return errors
