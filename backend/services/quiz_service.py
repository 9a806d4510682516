from models.schemas import QuizQuestion


class QuizStateError(ValueError):
    """Raised when a quiz operation does not apply to the quiz's current state."""


def is_correct(selected: list[int] | None, correct: list[int]) -> bool:
    """All-or-nothing: the selection must equal the answer key, order ignored."""
    return sorted(selected or []) == sorted(correct)


def grade(questions: list[QuizQuestion], user_answers: dict[int, list[int]]) -> int:
    return sum(1 for q in questions if is_correct(user_answers.get(q.id), q.correct_answers))


def percentage(score: int, total: int) -> int:
    return 0 if total == 0 else round(score / total * 100)


def out_of_20(score: int, total: int) -> int:
    return 0 if total == 0 else round(score / total * 20)


def _question(session, question_id: int) -> QuizQuestion:
    for q in session.questions:
        if q.id == question_id:
            return q
    raise QuizStateError(f"Unknown question id {question_id}")


def select_answer(session, question_id: int, option_index: int):
    """
    Records an option choice. Single-answer quizzes replace the selection;
    multiple-answer quizzes toggle the option in or out of it.
    """
    if session.is_finished:
        raise QuizStateError("Quiz is already finished")
    question = _question(session, question_id)
    if option_index >= len(question.options):
        raise QuizStateError(f"Option {option_index} out of range for question {question_id}")

    current = list(session.user_answers.get(question_id, []))
    if session.config.quiz_type == "multiple":
        if option_index in current:
            current.remove(option_index)
        else:
            current.append(option_index)
        selection = sorted(current)
    else:
        selection = [option_index]

    answers = dict(session.user_answers)
    answers[question_id] = selection
    return session.model_copy(update={"user_answers": answers})


def go_to_question(session, index: int):
    if session.is_finished:
        raise QuizStateError("Quiz is already finished")
    if not 0 <= index < len(session.questions):
        raise QuizStateError(f"Question index {index} out of range")
    return session.model_copy(update={"current_question_index": index})


def finish_quiz(session):
    return session.model_copy(update={"is_finished": True})


def review(session) -> list[dict]:
    """Per-question breakdown shown on the results screen."""
    rows = []
    for q in session.questions:
        selected = session.user_answers.get(q.id, [])
        rows.append({
            "question": q.question,
            "user_answer": ", ".join(q.options[i] for i in selected if i < len(q.options)),
            "correct_answer": ", ".join(q.options[i] for i in q.correct_answers if i < len(q.options)),
            "is_correct": is_correct(selected, q.correct_answers),
            "explanation": q.explanation,
        })
    return rows
