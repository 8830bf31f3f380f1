import struct

import pytest

from quizledger.core import addressing


def test_derive_is_deterministic():
    a = addressing.derive("topic", ["Mathematics"])
    b = addressing.derive("topic", ["Mathematics"])
    assert a == b
    assert len(a) == 64
    int(a, 16)  # hex


def test_derive_separates_namespaces_and_parts():
    assert addressing.derive("topic", ["x"]) != addressing.derive("vault", ["x"])
    # length prefixes keep part boundaries distinct
    assert addressing.derive("ns", ["ab", "c"]) != addressing.derive("ns", ["a", "bc"])
    assert addressing.derive("ns", ["abc"]) != addressing.derive("ns", ["ab", "c"])


def test_str_and_bytes_seeds_agree():
    assert addressing.derive("topic", ["Math"]) == addressing.derive("topic", [b"Math"])


def test_rejects_non_byte_seeds():
    with pytest.raises(TypeError):
        addressing.derive("topic", [42])


def test_entity_addresses():
    quiz = addressing.quiz_set_address("alice", 7)
    assert quiz == addressing.quiz_set_address("alice", 7)
    assert quiz != addressing.quiz_set_address("alice", 8)
    assert quiz != addressing.quiz_set_address("bob", 7)

    block_1 = addressing.question_block_address(quiz, 1)
    block_2 = addressing.question_block_address(quiz, 2)
    assert block_1 != block_2
    assert addressing.vault_address(quiz) not in (quiz, block_1, block_2)

    topic = addressing.topic_address("Mathematics")
    assert addressing.user_score_address("alice", topic) != addressing.user_score_address("bob", topic)
    assert addressing.quiz_history_address("alice", quiz, 100) != addressing.quiz_history_address("alice", quiz, 101)


def test_unique_id_must_fit_one_byte():
    with pytest.raises(struct.error):
        addressing.quiz_set_address("alice", 256)
