"""
Question import and result export.

Imported sheets use the columns

    text | type | options (";"-joined) | depends on row # | show when (";"-joined)

The last two columns are optional. A header row is recognised and skipped.
Dependencies refer to the 1-based position of the parent among the data
rows.
"""
import csv
import io
import logging
import re
import zipfile
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from .conditions import authoring_warnings, prune_conditions, validate_questions
from .errors import ValidationError
from .schemas import Question, QuestionType, Survey, SurveyResponse, new_id

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

TEMPLATE_HEADER = [
    "Texto de la Pregunta",
    "Tipo",
    "Opciones (separadas por ;)",
    "Depende de pregunta #",
    "Mostrar cuando (separado por ;)",
]

TEMPLATE_ROWS = [
    ["¿Qué le pareció el servicio?", "multiple-choice", "Excelente;Bueno;Regular;Malo", "", ""],
    ["¿Por qué eligió esta respuesta?", "free-text", "", "1", "Malo;Regular"],
    [
        "¿Recomendaría nuestro servicio?",
        "multiple-choice",
        "Sí, definitivamente;Probablemente;No estoy seguro;No",
        "",
        "",
    ],
    ["¿Qué podríamos mejorar?", "free-text", "", "3", "No estoy seguro;No"],
]

_HEADER_TYPE_CELLS = {"tipo", "type"}


def _cell(row: Sequence[Any], index: int) -> str:
    if index >= len(row) or row[index] is None:
        return ""
    value = row[index]
    # openpyxl hands numbers back as int or float
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _split(value: str) -> List[str]:
    return [part.strip() for part in value.split(";") if part.strip()]


def _row_number(value: str) -> Optional[int]:
    if not value:
        return None
    try:
        return int(float(value))
    except ValueError:
        return None


def read_csv_rows(data: bytes) -> List[List[str]]:
    text = data.decode("utf-8-sig")
    return [row for row in csv.reader(io.StringIO(text))]


def read_xlsx_rows(data: bytes) -> List[List[Any]]:
    try:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as exc:
        raise ValidationError(
            "No se pudo leer el archivo Excel", fields={"file": str(exc)}
        ) from exc
    try:
        sheet = workbook.worksheets[0]
        return [list(row) for row in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()


def parse_question_rows(rows: Iterable[Sequence[Any]]) -> Tuple[List[Question], List[str]]:
    """Builds questions from sheet rows; returns (questions, warnings)."""
    data_rows = [row for row in rows if any(_cell(row, i) for i in range(len(row)))]
    if data_rows and _cell(data_rows[0], 1).lower() in _HEADER_TYPE_CELLS:
        data_rows = data_rows[1:]
    if not data_rows:
        raise ValidationError("El archivo no contiene preguntas", fields={"file": "vacío"})

    questions: List[Question] = []
    for number, row in enumerate(data_rows, start=1):
        text, type_value = _cell(row, 0), _cell(row, 1)
        if not text or not type_value:
            raise ValidationError(
                "Todas las preguntas deben tener texto y tipo",
                fields={f"row[{number}]": "texto y tipo son obligatorios"},
            )
        try:
            question_type = QuestionType(type_value)
        except ValueError:
            raise ValidationError(
                f"Tipo de pregunta inválido: {type_value}",
                fields={f"row[{number}].type": type_value},
            ) from None

        options: List[str] = []
        if question_type == QuestionType.MULTIPLE_CHOICE:
            options = _split(_cell(row, 2))
            if len(options) < 2:
                raise ValidationError(
                    "Las preguntas de opción múltiple deben tener al menos 2 opciones",
                    fields={f"row[{number}].options": _cell(row, 2)},
                )
        questions.append(Question(id=new_id(), text=text, type=question_type, options=options))

    warnings: List[str] = []
    linked: List[Question] = []
    for number, (question, row) in enumerate(zip(questions, data_rows), start=1):
        parent_number = _row_number(_cell(row, 3))
        if parent_number is None:
            linked.append(question)
            continue
        if not 1 <= parent_number <= len(questions) or parent_number == number:
            warnings.append(
                f"Fila {number}: la pregunta {parent_number} no existe, se ignora la condición"
            )
            linked.append(question)
            continue
        parent = questions[parent_number - 1]
        linked.append(
            question.model_copy(
                update={"depends_on": parent.id, "show_when": _split(_cell(row, 4))}
            )
        )

    linked = prune_conditions(linked)
    validate_questions(linked)
    warnings.extend(authoring_warnings(linked))
    logger.info("Imported %d questions (%d warnings)", len(linked), len(warnings))
    return linked, warnings


def import_questions(filename: str, data: bytes) -> Tuple[List[Question], List[str]]:
    name = (filename or "").lower()
    if name.endswith(".xlsx"):
        rows = read_xlsx_rows(data)
    elif name.endswith(".csv"):
        try:
            rows = read_csv_rows(data)
        except UnicodeDecodeError as exc:
            raise ValidationError(
                "El archivo CSV debe estar en UTF-8", fields={"file": filename}
            ) from exc
    else:
        raise ValidationError(
            "Formato no soportado. Use un archivo .xlsx o .csv",
            fields={"file": filename},
        )
    return parse_question_rows(rows)


def template_csv() -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(TEMPLATE_HEADER)
    writer.writerows(TEMPLATE_ROWS)
    return output.getvalue()


def template_xlsx() -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Plantilla"
    sheet.append(TEMPLATE_HEADER)
    for row in TEMPLATE_ROWS:
        sheet.append(row)
    output = io.BytesIO()
    workbook.save(output)
    return output.getvalue()


def results_header(survey: Survey) -> List[str]:
    return ["ID", "Respondent", "Completed At"] + [q.text for q in survey.questions] + ["Has Audio"]


def results_rows(survey: Survey, responses: Iterable[SurveyResponse]) -> List[List[str]]:
    rows = []
    for response in responses:
        by_question = {a.question_id: a for a in response.answers}
        row = [response.id, response.respondent_id, response.completed_at.isoformat()]
        for question in survey.questions:
            answer = by_question.get(question.id)
            if answer is None:
                row.append("")
            elif question.type == QuestionType.MULTIPLE_CHOICE:
                row.append(answer.selected_option)
            else:
                row.append(answer.text_answer or "")
        row.append("Yes" if response.audio_recording else "No")
        rows.append(row)
    return rows


def results_csv(survey: Survey, responses: Iterable[SurveyResponse]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(results_header(survey))
    writer.writerows(results_rows(survey, responses))
    return output.getvalue()


def results_filename(survey: Survey, day: str) -> str:
    # Header-safe: ASCII word characters only
    stem = re.sub(r"[^\w-]", "", "_".join(survey.title.split()), flags=re.ASCII)
    return f"{stem or 'survey'}_results_{day}.csv"
