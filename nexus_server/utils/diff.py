"""
Line-based text diff used by file and project snapshot comparison.

Matching is done with difflib's longest-matching-block algorithm, so an
inserted line in the middle of a file shows up as one ``added`` entry instead
of shifting every following line into removed/added pairs.
"""
from difflib import SequenceMatcher
from typing import Dict, List, Any


def split_lines(text: str) -> List[str]:
    if text is None:
        return []
    return text.replace("\r\n", "\n").split("\n")


def _entry(kind: str, line: str, old_no, new_no) -> Dict[str, Any]:
    return {
        "type": kind,
        "line": line,
        "lineNum": old_no if kind == "removed" else new_no,
        "oldLineNum": old_no,
        "newLineNum": new_no,
    }


def diff_lines(old_text: str, new_text: str) -> List[Dict[str, Any]]:
    """
    Compare two texts line by line.
    Returns an ordered list of {type: same|added|removed, line, lineNum, oldLineNum, newLineNum}.
    Within a replaced block all removals come before the additions.
    """
    old_lines = split_lines(old_text)
    new_lines = split_lines(new_text)

    matcher = SequenceMatcher(None, old_lines, new_lines, autojunk=False)
    diff = []

    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            for offset in range(i2 - i1):
                diff.append(_entry("same", old_lines[i1 + offset], i1 + offset + 1, j1 + offset + 1))
            continue

        if tag in ("delete", "replace"):
            for i in range(i1, i2):
                diff.append(_entry("removed", old_lines[i], i + 1, None))
        if tag in ("insert", "replace"):
            for j in range(j1, j2):
                diff.append(_entry("added", new_lines[j], None, j + 1))

    return diff


def summarize(diff: List[Dict[str, Any]]) -> Dict[str, int]:
    summary = {"added": 0, "removed": 0, "unchanged": 0}
    for entry in diff:
        if entry["type"] == "added":
            summary["added"] += 1
        elif entry["type"] == "removed":
            summary["removed"] += 1
        else:
            summary["unchanged"] += 1
    return summary
