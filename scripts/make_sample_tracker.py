#!/usr/bin/env python
from __future__ import annotations

import argparse
from datetime import date, timedelta
from pathlib import Path

from openpyxl import Workbook


HEADER = [
    "Task UID",
    "Site UID",
    "Package ID",
    "Site Name",
    "District",
    "Task Name",
    "Category",
    "Planned Start",
    "Planned Finish",
    "Actual Start",
    "Actual Finish",
    "Weight",
    "Progress",
    "Last Updated",
    "Remarks",
]

TASKS = [
    ("Site mobilisation", "Preliminaries", 5),
    ("Roof repair", "Civil works", 25),
    ("Electrical rewiring", "MEP", 20),
    ("Plumbing and drainage", "MEP", 20),
    ("Painting and finishes", "Finishes", 15),
    ("Handover", "Closeout", 15),
]


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a sample Data_Entry workbook")
    parser.add_argument("--output", required=True, help="Output path (.xlsx)")
    parser.add_argument("--package", default="Bemonc7-rehab", help="Package identifier")
    parser.add_argument("--sites", type=int, default=3, help="Number of sites")
    args = parser.parse_args()

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Data_Entry"
    sheet.append(HEADER)

    today = date.today()
    for site_index in range(1, args.sites + 1):
        site_uid = f"{args.package}-S{site_index:02d}"
        start = today - timedelta(days=60 - 10 * site_index)
        for task_index, (name, category, weight) in enumerate(TASKS, start=1):
            planned_start = start + timedelta(days=14 * (task_index - 1))
            planned_finish = planned_start + timedelta(days=13)
            actual_start = planned_start if planned_start <= today else None
            actual_finish = planned_finish if planned_finish < today - timedelta(days=7) else None
            sheet.append([
                f"{site_uid}-T{task_index:02d}",
                site_uid,
                args.package,
                f"Health Centre {site_index}",
                f"District {1 + site_index % 2}",
                name,
                category,
                planned_start,
                planned_finish,
                actual_start,
                actual_finish,
                weight,
                100 if actual_finish else (50 if actual_start else 0),
                today,
                "",
            ])

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(output)
    print(f"Sample tracker workbook written to: {output}")


if __name__ == "__main__":
    main()
