"""Unit tests for access key code generation."""

from __future__ import annotations

import itertools

from app.constants import KEY_CODE_ALPHABET
from app.keys.codes import (
    KEY_CODE_RE,
    event_prefix_from_name,
    generate_code,
    random_segment,
    sport_code,
)


class TestCodeFormat:
    def test_matches_contract_regex(self) -> None:
        code = generate_code("SU", "swimming", year=2026)
        assert KEY_CODE_RE.match(code)

    def test_segments(self) -> None:
        code = generate_code("EV", "swimming", year=2026)
        prefix, random_part, sport = code.split("-")
        assert prefix == "EV26"
        assert len(random_part) == 6
        assert sport == "SWI"

    def test_two_digit_year(self) -> None:
        assert generate_code("EV", "judo", year=2105).startswith("EV05-")
        assert generate_code("EV", "judo", year=26).startswith("EV26-")

    def test_defaults_to_current_year(self) -> None:
        assert KEY_CODE_RE.match(generate_code("EV", "judo"))

    def test_deterministic_choice_injectable(self) -> None:
        assert generate_code("EV", "judo", year=2026, choice=lambda s: s[0]) == "EV26-222222-JUD"


class TestPrefixes:
    def test_event_prefix_first_two_upper(self) -> None:
        assert event_prefix_from_name("summer games") == "SU"

    def test_event_prefix_trims_whitespace(self) -> None:
        assert event_prefix_from_name("  regional cup") == "RE"

    def test_short_event_name_padded(self) -> None:
        assert event_prefix_from_name("x") == "XX"
        assert event_prefix_from_name("") == "XX"

    def test_sport_code_padded(self) -> None:
        assert sport_code("swimming") == "SWI"
        assert sport_code("go") == "GOX"
        assert sport_code("5k") == "5KX"

    def test_prefix_skips_non_letters(self) -> None:
        assert event_prefix_from_name("5K Run") == "KR"
        assert event_prefix_from_name("Été Cup") == "TC"
        assert event_prefix_from_name("2026") == "XX"

    def test_sport_code_skips_punctuation(self) -> None:
        assert sport_code("beach-volley") == "BEA"
        assert sport_code("3x3 basketball") == "3X3"
        assert sport_code("m-1") == "M1X"

    def test_odd_names_still_match_contract(self) -> None:
        code = generate_code(event_prefix_from_name("5K Run"), "tae kwon do", year=2026)
        assert KEY_CODE_RE.match(code)


class TestRandomSegment:
    def test_alphabet_excludes_ambiguous_characters(self) -> None:
        for ch in "0O1Il":
            assert ch not in KEY_CODE_ALPHABET
        assert len(KEY_CODE_ALPHABET) == 57

    def test_only_alphabet_characters(self) -> None:
        for _ in range(200):
            assert set(random_segment()) <= set(KEY_CODE_ALPHABET)

    def test_no_collision_in_ten_thousand_generations(self) -> None:
        segments = [generate_code("EV", "swimming", year=2026).split("-")[1] for _ in range(10_000)]
        assert len(set(segments)) == len(segments)

    def test_cycling_choice_produces_distinct_segments(self) -> None:
        cycle = itertools.cycle(KEY_CODE_ALPHABET)
        first = random_segment(choice=lambda _: next(cycle))
        second = random_segment(choice=lambda _: next(cycle))
        assert first != second
