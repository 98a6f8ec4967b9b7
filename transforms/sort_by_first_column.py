"""Sort rows by the first column, comparing cells as text.

Usage:
    drefine clean -i data.csv --scripts transforms --op sort_by_first_column

Reads ``{"headers": [...], "rows": [...]}`` on stdin and writes the same
shape to stdout.
"""

import json
import sys

import pandas as pd

data = json.load(sys.stdin)
headers = data["headers"]
frame = pd.DataFrame(data["rows"], columns=headers, dtype=object)

if headers and not frame.empty:
    first = headers[0]
    frame = frame.sort_values(
        by=first,
        key=lambda col: col.map(lambda v: "" if v is None else str(v)),
        kind="stable",
    )

rows = [dict(zip(headers, values)) for values in frame.itertuples(index=False, name=None)]
json.dump({"headers": headers, "rows": rows}, sys.stdout, ensure_ascii=False)
