"""
Natural-language instruction sent to the agent runtime.
"""

from typing import Sequence

CSV_COLUMNS = (
    "Owner/Payee name",
    "Property/Well name",
    "Product type",
    "Volume",
    "Price",
    "Gross value",
    "Deductions",
    "Net value",
)

PROMPT_TEMPLATE = """Process this EOG Resources revenue check PDF: {pdf_path}

Use pdftoppm to convert pages to PNG images, then use vision to extract the data from each page.

Extract all revenue/payment data into a CSV format with columns for:
{columns}

Save the parsed CSV output to: {csv_path}"""


def build_extraction_prompt(pdf_path, csv_path, columns: Sequence[str] = CSV_COLUMNS) -> str:
    """Instruction embedding the input PDF, the output CSV and its columns."""
    return PROMPT_TEMPLATE.format(
        pdf_path=pdf_path,
        csv_path=csv_path,
        columns="\n".join(f"- {column}" for column in columns),
    )


def shell_single_quote(text: str) -> str:
    """Wrap text in single quotes for sh, escaping embedded quotes as '\\''."""
    return "'" + text.replace("'", "'\\''") + "'"
