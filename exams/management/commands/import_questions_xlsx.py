# exams/management/commands/import_questions_xlsx.py
import re

import pandas as pd
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from accounts.models import College
from common.enums import Difficulty, QuestionType
from exams.models import Question


QUESTION_RE = re.compile(r"^\s*question\b\s*[:\-]?\s*(.*)$", re.IGNORECASE)
OPTION_RE   = re.compile(r"^\s*\(?([A-Fa-f])[.)]\s*(.*)$")
ANSWER_RE   = re.compile(r"^\s*answer\b\s*[:\-]?\s*\(?([A-Fa-f])\)?", re.IGNORECASE)

LETTERS = "abcdef"


def _clean(s):
    if s is None:
        return ""
    s = str(s).strip()
    # strip stray "Q1." / "1)" numbers at start
    s = re.sub(r"^\s*(?:Q?\d+[.)-]\s*)", "", s, flags=re.IGNORECASE)
    return s


def parse_lines(lines):
    """
    lines: list[str] from the first column of the sheet
    Returns: list of {text, options: [(letter, text), ...], correct: 'a'..'f'}
    Blocks without options or without an Answer line are skipped.
    """
    out = []
    i = 0
    n = len(lines)

    while i < n:
        m_q = QUESTION_RE.match(_clean(lines[i]))
        if not m_q:
            i += 1
            continue

        q_text = m_q.group(1).strip()
        i += 1
        options = []
        correct = None

        while i < n:
            curr = _clean(lines[i])
            if not curr:
                i += 1
                continue
            if QUESTION_RE.match(curr):
                break

            m_ans = ANSWER_RE.match(curr)
            if m_ans:
                correct = m_ans.group(1).lower()
                i += 1
                break

            m_opt = OPTION_RE.match(curr)
            if m_opt:
                options.append((m_opt.group(1).lower(), m_opt.group(2).strip()))
                i += 1
                continue

            # extra line of the question stem
            q_text = (q_text + " " + curr).strip()
            i += 1

        if len(options) < 2 or not correct or correct not in {l for l, _ in options}:
            continue

        out.append({"text": q_text, "options": options, "correct": correct})

    return out


def to_question_fields(block, marks):
    options = [
        {"id": letter.upper(), "text": text, "isCorrect": letter == block["correct"]}
        for letter, text in sorted(block["options"], key=lambda o: LETTERS.index(o[0]))
    ]
    return {
        "question_type": QuestionType.MCQ,
        "title": block["text"][:200],
        "content": block["text"],
        "marks": marks,
        "difficulty": Difficulty.MEDIUM,
        "options": options[:6],
    }


class Command(BaseCommand):
    help = "Import MCQ questions into a college's bank from an .xlsx laid out as 'Question / A) … / Answer: X' rows."

    def add_arguments(self, parser):
        parser.add_argument("file", help="Path to .xlsx file")
        parser.add_argument("--college", required=True, help="College slug")
        parser.add_argument("--sheet", default=0, help="Worksheet name or index (default: first sheet)")
        parser.add_argument("--marks", type=int, default=1)
        parser.add_argument("--dry-run", action="store_true", help="Parse only, do not write to DB")

    def handle(self, *args, **opts):
        college = College.objects.filter(slug=opts["college"]).first()
        if college is None:
            raise CommandError(f"No college with slug '{opts['college']}'")

        sheet = opts["sheet"]
        if isinstance(sheet, str) and sheet.isdigit():
            sheet = int(sheet)

        try:
            # header=None so the first row is not swallowed as a header
            df = pd.read_excel(opts["file"], sheet_name=sheet, header=None, engine="openpyxl")
        except (OSError, ValueError) as e:
            raise CommandError(f"Failed to read Excel: {e}")

        lines = [str(x) for x in df.iloc[:, 0].tolist() if str(x).strip() and str(x).strip().lower() != "nan"]
        blocks = parse_lines(lines)
        self.stdout.write(f"Parsed {len(blocks)} question(s).")

        if opts["dry_run"]:
            self.stdout.write("Dry-run complete. No DB changes made.")
            return

        with transaction.atomic():
            Question.objects.bulk_create(
                [Question(college=college, **to_question_fields(b, opts["marks"])) for b in blocks]
            )

        self.stdout.write(self.style.SUCCESS(f"Imported {len(blocks)} question(s) into {college.name}."))
