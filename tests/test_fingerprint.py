"""Tests for recurring-instance fingerprints."""

from taskhue.fingerprint import Fingerprint, FingerprintMap, extract_fingerprint


class TestExtractFingerprint:
    """Tests for extract_fingerprint."""

    def test_title_and_time(self) -> None:
        result = extract_fingerprint("task: Standup, Not completed, December 7, 2025, 10:30am")
        assert result.title == "Standup"
        assert result.time == "10:30am"
        assert result.key == "Standup|10:30am"

    def test_time_is_lowercased_and_hour_only_allowed(self) -> None:
        result = extract_fingerprint("task: Water plants, Completed, May 1, 2025, 9PM")
        assert result.time == "9pm"
        assert result.key == "Water plants|9pm"

    def test_title_is_trimmed(self) -> None:
        assert extract_fingerprint("task:    Gym   , Completed, 7am").title == "Gym"

    def test_missing_time_gives_no_key(self) -> None:
        result = extract_fingerprint("task: All day thing, Not completed, December 7, 2025")
        assert result.title == "All day thing"
        assert result.time is None
        assert result.key is None

    def test_missing_title_gives_no_key(self) -> None:
        result = extract_fingerprint("Meeting at 10am")
        assert result.title is None
        assert result.key is None

    def test_empty_text(self) -> None:
        assert extract_fingerprint("") == Fingerprint()
        assert extract_fingerprint(None).key is None


class TestFingerprintMap:
    """Tests for the advisory fingerprint map."""

    def test_remember_and_lookup(self) -> None:
        fingerprints = FingerprintMap()
        fingerprints.remember("Standup|10:30am", "list-a")
        assert fingerprints.lookup("Standup|10:30am") == "list-a"
        assert len(fingerprints) == 1

    def test_last_writer_wins(self) -> None:
        fingerprints = FingerprintMap()
        fingerprints.remember("Standup|10:30am", "list-a")
        fingerprints.remember("Standup|10:30am", "list-b")
        assert fingerprints.lookup("Standup|10:30am") == "list-b"

    def test_ignores_missing_parts(self) -> None:
        fingerprints = FingerprintMap()
        fingerprints.remember(None, "list-a")
        fingerprints.remember("Standup|10:30am", None)
        assert len(fingerprints) == 0
        assert fingerprints.lookup(None) is None

    def test_clear(self) -> None:
        fingerprints = FingerprintMap()
        fingerprints.remember("Standup|10:30am", "list-a")
        fingerprints.clear()
        assert fingerprints.lookup("Standup|10:30am") is None
