"""
Tests for SequenceService.
"""

from mill_kernel.services.sequence_service import SequenceService


class TestSequenceService:

    def test_first_value_is_one(self, session, db_tables):
        assert SequenceService(session).next_value("invoice") == 1

    def test_values_are_monotonic(self, session, db_tables):
        sequences = SequenceService(session)

        values = [sequences.next_value(SequenceService.TRANSACTION) for _ in range(5)]

        assert values == [1, 2, 3, 4, 5]
        assert sequences.current_value(SequenceService.TRANSACTION) == 5

    def test_sequences_are_independent(self, session, db_tables):
        sequences = SequenceService(session)
        sequences.next_value("a")
        sequences.next_value("a")

        assert sequences.next_value("b") == 1

    def test_current_value_of_unused_sequence(self, session, db_tables):
        assert SequenceService(session).current_value("never-used") is None

    def test_account_sequence_name(self):
        assert SequenceService.account_sequence("ACC-CAS") == "account:ACC-CAS"
