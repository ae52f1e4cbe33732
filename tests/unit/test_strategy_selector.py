from rag_fusion.strategy.selector import StrategySelector

COMPLEX_QUERY = "Please compare the refund policies across our regions"
PLAIN_QUERY = "Tell me about refund handling for enterprise customers"


def test_disabled_always_selects_fast_path() -> None:
    decision = StrategySelector().decide(COMPLEX_QUERY, 20, 5, False)

    assert decision.use_rich_path is False
    assert decision.confidence == 1.0


def test_simple_factual_query_uses_fast_path() -> None:
    decision = StrategySelector().decide("What is the refund policy", 20, 5, True)

    assert decision.use_rich_path is False
    assert decision.confidence == 0.85


def test_short_query_wins_over_document_count() -> None:
    decision = StrategySelector().decide("refund policy details", 10, 5, True)

    assert decision.use_rich_path is False
    assert decision.confidence == 0.9


def test_early_conversation_wins_over_complex_pattern() -> None:
    decision = StrategySelector().decide(COMPLEX_QUERY, 2, 5, True)

    assert decision.use_rich_path is False
    assert decision.confidence == 0.8


def test_complex_analytical_query_uses_rich_path() -> None:
    decision = StrategySelector().decide(COMPLEX_QUERY, 8, 1, True)

    assert decision.use_rich_path is True
    assert decision.confidence == 0.85


def test_many_documents_use_rich_path() -> None:
    decision = StrategySelector().decide(PLAIN_QUERY, 8, 3, True)

    assert decision.use_rich_path is True
    assert decision.confidence == 0.75


def test_long_query_uses_rich_path() -> None:
    query = (
        "I would like to know more about the refund handling rules that apply "
        "to enterprise customers in the northern sales region today please"
    )

    decision = StrategySelector().decide(query, 8, 1, True)

    assert decision.use_rich_path is True
    assert decision.confidence == 0.7


def test_default_is_fast_path() -> None:
    decision = StrategySelector().decide(PLAIN_QUERY, 8, 1, True)

    assert decision.use_rich_path is False
    assert decision.confidence == 0.7
