"""
Conditional question logic.

A question may depend on exactly one earlier-authored multiple-choice
question (`depends_on`) and is shown only while the parent's answer is one
of its `show_when` options. Evaluation assumes the dependency graph is
acyclic; the authoring helpers below are what keep it that way.
"""
import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .errors import ValidationError
from .schemas import Answer, Question, QuestionType, Survey

logger = logging.getLogger(__name__)

AnswerValue = Union[Answer, str]


def _selected_option(answer: Optional[AnswerValue]) -> Optional[str]:
    if answer is None:
        return None
    if isinstance(answer, Answer):
        return answer.selected_option or None
    return answer or None


def answers_by_question(answers: Iterable[Answer]) -> Dict[str, Answer]:
    return {a.question_id: a for a in answers}


def is_visible(question: Question, answers: Mapping[str, AnswerValue]) -> bool:
    if question.depends_on is None:
        return True
    selected = _selected_option(answers.get(question.depends_on))
    if selected is None:
        return False
    return selected in (question.show_when or [])


def visible_questions(
    questions: Sequence[Question], answers: Mapping[str, AnswerValue]
) -> List[Question]:
    """Questions to present for the answers collected so far, in authoring order."""
    return [q for q in questions if is_visible(q, answers)]


def dependency_chain(questions: Sequence[Question], question_id: str) -> List[str]:
    """Ancestors of `question_id`, nearest parent first."""
    by_id = {q.id: q for q in questions}
    chain: List[str] = []
    seen = {question_id}
    current = by_id.get(question_id)
    while current is not None and current.depends_on is not None:
        parent_id = current.depends_on
        if parent_id in seen:
            # Already cyclic data; stop walking rather than loop forever.
            chain.append(parent_id)
            break
        chain.append(parent_id)
        seen.add(parent_id)
        current = by_id.get(parent_id)
    return chain


def would_create_cycle(
    questions: Sequence[Question], child_id: str, parent_id: str
) -> bool:
    if child_id == parent_id:
        return True
    return child_id in dependency_chain(questions, parent_id)


def set_dependency(
    questions: Sequence[Question],
    child_id: str,
    parent_id: Optional[str],
    show_when: Optional[Sequence[str]] = None,
) -> List[Question]:
    """
    Returns a copy of `questions` where `child_id` depends on `parent_id`.

    Passing `parent_id=None` makes the child unconditional again.
    """
    by_id = {q.id: q for q in questions}
    child = by_id.get(child_id)
    if child is None:
        raise ValidationError(
            "La pregunta no existe", fields={"question_id": child_id}
        )

    if parent_id is None:
        return [
            q.model_copy(update={"depends_on": None, "show_when": None})
            if q.id == child_id
            else q
            for q in questions
        ]

    parent = by_id.get(parent_id)
    if parent is None:
        raise ValidationError(
            "La pregunta de la que depende no existe",
            fields={"depends_on": parent_id},
        )
    if parent.type != QuestionType.MULTIPLE_CHOICE:
        raise ValidationError(
            "Solo se puede depender de preguntas de opción múltiple",
            fields={"depends_on": parent_id},
        )
    if would_create_cycle(questions, child_id, parent_id):
        raise ValidationError(
            "La condición crearía una dependencia circular",
            fields={"depends_on": parent_id},
        )

    wanted = list(show_when or [])
    unknown = [opt for opt in wanted if opt not in parent.options]
    if unknown:
        raise ValidationError(
            "Las opciones de la condición no existen en la pregunta padre",
            fields={"show_when": ", ".join(unknown)},
        )

    return [
        q.model_copy(update={"depends_on": parent_id, "show_when": wanted})
        if q.id == child_id
        else q
        for q in questions
    ]


def remove_question(questions: Sequence[Question], question_id: str) -> List[Question]:
    """Drops a question; its dependents lose their condition."""
    remaining: List[Question] = []
    for q in questions:
        if q.id == question_id:
            continue
        if q.depends_on == question_id:
            logger.info(
                "Question %s no longer depends on deleted question %s",
                q.id,
                question_id,
            )
            q = q.model_copy(update={"depends_on": None, "show_when": None})
        remaining.append(q)
    return remaining


def prune_conditions(questions: Sequence[Question]) -> List[Question]:
    """
    Brings conditions in line with the current parents.

    Conditions on a vanished parent are cleared; `show_when` entries that
    are no longer options of the parent are dropped.
    """
    by_id = {q.id: q for q in questions}
    pruned: List[Question] = []
    for q in questions:
        if q.depends_on is None:
            if q.show_when is not None:
                q = q.model_copy(update={"show_when": None})
            pruned.append(q)
            continue
        parent = by_id.get(q.depends_on)
        if parent is None:
            q = q.model_copy(update={"depends_on": None, "show_when": None})
        else:
            kept = [opt for opt in (q.show_when or []) if opt in parent.options]
            if kept != (q.show_when or []) or q.show_when is None:
                q = q.model_copy(update={"show_when": kept})
        pruned.append(q)
    return pruned


def validate_questions(questions: Sequence[Question]) -> None:
    fields: Dict[str, str] = {}
    seen_ids = set()
    by_id = {q.id: q for q in questions}

    for index, q in enumerate(questions):
        key = f"questions[{index}]"
        if q.id in seen_ids:
            fields[f"{key}.id"] = "Identificador de pregunta duplicado"
        seen_ids.add(q.id)

        if not q.text.strip():
            fields[f"{key}.text"] = "Todas las preguntas deben tener un texto"

        if q.type == QuestionType.MULTIPLE_CHOICE:
            if len(q.options) < 2:
                fields[f"{key}.options"] = (
                    f'La pregunta "{q.text}" debe tener al menos 2 opciones'
                )
            elif any(not opt.strip() for opt in q.options):
                fields[f"{key}.options"] = (
                    f'Todas las opciones de la pregunta "{q.text}" deben tener texto'
                )

        if q.depends_on is not None:
            parent = by_id.get(q.depends_on)
            if q.depends_on == q.id:
                fields[f"{key}.depends_on"] = "Una pregunta no puede depender de sí misma"
            elif parent is None:
                fields[f"{key}.depends_on"] = "La pregunta de la que depende no existe"
            elif parent.type != QuestionType.MULTIPLE_CHOICE:
                fields[f"{key}.depends_on"] = (
                    "Solo se puede depender de preguntas de opción múltiple"
                )
            elif q.id in dependency_chain(questions, q.depends_on):
                fields[f"{key}.depends_on"] = "Dependencia circular entre preguntas"
            else:
                unknown = [o for o in (q.show_when or []) if o not in parent.options]
                if unknown:
                    fields[f"{key}.show_when"] = (
                        "Opciones inexistentes: " + ", ".join(unknown)
                    )

    if fields:
        raise ValidationError("Las preguntas de la encuesta no son válidas", fields)


def authoring_warnings(questions: Sequence[Question]) -> List[str]:
    warnings: List[str] = []
    for q in questions:
        if q.depends_on is not None and not q.show_when:
            warnings.append(
                f'La pregunta "{q.text}" nunca se mostrará: '
                "no tiene opciones que la activen"
            )
    return warnings


def validate_answers(survey: Survey, answers: Sequence[Answer]) -> List[Answer]:
    """
    Checks a completed answer set against the questions visible for it.

    Returns the answers in authoring order with answers to questions that
    ended up hidden dropped. Dropping a stale answer can hide the questions
    that depend on it, so this repeats until the visible set is stable and
    the stored answers re-evaluate to exactly the same visible set.
    """
    fields: Dict[str, str] = {}
    submitted = answers_by_question(answers)
    known = {q.id for q in survey.questions}

    for question_id in submitted:
        if question_id not in known:
            fields[question_id] = "Pregunta desconocida"

    answer_map = {k: v for k, v in submitted.items() if k in known}
    while True:
        visible = visible_questions(survey.questions, answer_map)
        visible_ids = {q.id for q in visible}
        kept = {k: v for k, v in answer_map.items() if k in visible_ids}
        if len(kept) == len(answer_map):
            break
        answer_map = kept

    for q in visible:
        answer = answer_map.get(q.id)
        if answer is None:
            fields[q.id] = "Por favor, responde todas las preguntas"
        elif q.type == QuestionType.MULTIPLE_CHOICE:
            if answer.selected_option not in q.options:
                fields[q.id] = "Opción no válida"
        elif not (answer.text_answer or "").strip():
            fields[q.id] = "La respuesta libre no puede estar vacía"

    if fields:
        raise ValidationError("Respuestas incompletas o no válidas", fields)
    return [answer_map[q.id] for q in visible]
