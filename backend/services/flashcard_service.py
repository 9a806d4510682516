class CardIndexError(ValueError):
    pass


def calculate_progress(session) -> int:
    """Share of cards already shown at least once, as a rounded percentage."""
    total = len(session.cards)
    if total == 0:
        return 0
    seen = {i for i in session.viewed if 0 <= i < total}
    return round(len(seen) / total * 100)


def go_to_card(session, index: int):
    if not 0 <= index < len(session.cards):
        raise CardIndexError(f"Card index {index} out of range")
    viewed = session.viewed if index in session.viewed else sorted([*session.viewed, index])
    return session.model_copy(update={"current_index": index, "viewed": viewed})
