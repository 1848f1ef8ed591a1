# similarity.py — 음성 인식 텍스트 vs OCR 텍스트 유사도 (0.0 ~ 1.0, 1.0이면 완전 일치)

from rapidfuzz.distance import Levenshtein
from jamo import h2j, j2hcj


def _to_jamo(s: str) -> str:
    try:
        return j2hcj(h2j(s))
    except Exception:
        return s or ""


def edit_distance(a: str, b: str) -> int:
    # 삽입/삭제/치환 모두 비용 1
    return Levenshtein.distance(a or "", b or "")


def similarity(a: str, b: str) -> float:
    a = a or ""; b = b or ""
    longer, shorter = (a, b) if len(a) > len(b) else (b, a)
    max_len = len(longer)
    if max_len == 0:
        return 1.0
    return (max_len - edit_distance(longer, shorter)) / float(max_len)


def jamo_similarity(a: str, b: str) -> float:
    """한글을 자모로 풀어서 비교. '라떼' vs '라테'처럼 받침/모음 하나 차이를 덜 벌점."""
    return similarity(_to_jamo(a or ""), _to_jamo(b or ""))


def get_scorer(use_jamo: bool = False):
    return jamo_similarity if use_jamo else similarity
