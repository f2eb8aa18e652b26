"""
表示用の言語判定

キーワードによる簡易判定で、字句解析器ではない
ItemService は LanguageDetector のインスタンスだけを知っているので、
別の実装に差し替えても呼び出し側は変わらない
"""

import os
import re
from abc import ABC, abstractmethod
from typing import Optional

TEXT = "text"


class LanguageDetector(ABC):

    @abstractmethod
    def detect(self, content: str, file_name: Optional[str] = None) -> str:
        """判定できなければ "text" を返す"""


class ExtensionLanguageDetector(LanguageDetector):

    EXTENSIONS = {
        "py": "python",
        "js": "javascript", "mjs": "javascript", "jsx": "javascript",
        "ts": "typescript", "tsx": "typescript",
        "json": "json",
        "html": "html", "htm": "html",
        "xml": "xml", "svg": "xml",
        "css": "css",
        "c": "c", "h": "c",
        "cpp": "cpp", "cc": "cpp", "hpp": "cpp",
        "java": "java",
        "rb": "ruby",
        "php": "php",
        "go": "go",
        "rs": "rust",
        "sh": "bash", "bash": "bash",
        "sql": "sql",
        "yml": "yaml", "yaml": "yaml",
        "md": "markdown",
        "csv": "plaintext", "log": "plaintext", "txt": "plaintext",
    }

    def detect(self, content, file_name=None):
        if not file_name or "." not in file_name:
            return TEXT
        ext = os.path.splitext(file_name)[1].lstrip(".").lower()
        return self.EXTENSIONS.get(ext, TEXT)


class KeywordLanguageDetector(LanguageDetector):
    """
    言語ごとの (正規表現, 重み) を本文に当て、合計点が最大の言語を返す
    """

    RULES = {
        "python": [
            (r"^\s*def \w+\(.*\):\s*$", 3),
            (r"^\s*(from [\w.]+ )?import \w+", 2),
            (r"^\s*class \w+(\(.*\))?:\s*$", 3),
            (r"\bself\b", 1),
            (r"\belif\b|\bNone\b|\bTrue\b|\bFalse\b", 1),
        ],
        "javascript": [
            (r"\bfunction\s*\w*\s*\(", 2),
            (r"\b(const|let|var)\s+\w+\s*=", 2),
            (r"=>", 1),
            (r"\bconsole\.log\(", 3),
            (r"\brequire\(|\bexport (default|const|function)\b", 2),
        ],
        "json": [
            (r"^\s*[\[{]", 1),
            (r"\"[\w-]+\"\s*:", 2),
        ],
        "html": [
            (r"<!DOCTYPE html>", 5),
            (r"</?(html|head|body|div|span|p|a|script)\b[^>]*>", 2),
        ],
        "css": [
            (r"^[\w.#:\-\s,>]+\{\s*$", 2),
            (r"^\s*[\w-]+\s*:\s*[^;]+;\s*$", 1),
        ],
        "sql": [
            (r"\b(SELECT|INSERT INTO|UPDATE|DELETE FROM|CREATE TABLE)\b", 3),
            (r"\b(FROM|WHERE|JOIN|GROUP BY|ORDER BY)\b", 1),
        ],
        "bash": [
            (r"^#!/bin/(ba)?sh", 5),
            (r"^\s*(echo|export|sudo|cd|apt-get|fi|then)\b", 1),
            (r"\$\{?\w+\}?", 1),
        ],
        "java": [
            (r"\bpublic (static )?(class|void|int|String)\b", 3),
            (r"\bSystem\.out\.print", 3),
        ],
        "c": [
            (r"^#include\s*<\w+\.h>", 4),
            (r"\bint main\s*\(", 2),
            (r"\bprintf\(", 1),
        ],
        "go": [
            (r"^package \w+", 3),
            (r"\bfunc \w+\(", 2),
            (r":=", 1),
        ],
        "rust": [
            (r"\bfn \w+\(", 2),
            (r"\blet mut\b", 3),
            (r"\bimpl\b|\bpub fn\b", 2),
        ],
        "markdown": [
            (r"^#{1,6} \S", 2),
            (r"^\s*[-*] \S", 1),
            (r"\[[^\]]+\]\([^)]+\)", 2),
        ],
    }

    def __init__(self, rules=None, min_score: int = 2):
        rules = rules or self.RULES
        self.min_score = min_score
        self._compiled = {
            lang: [(re.compile(p, re.MULTILINE), w) for p, w in patterns]
            for lang, patterns in rules.items()
        }

    def score(self, content: str) -> dict:
        scores = {}
        for lang, patterns in self._compiled.items():
            total = sum(w for pattern, w in patterns if pattern.search(content))
            if total:
                scores[lang] = total
        return scores

    def detect(self, content, file_name=None):
        if not content or not content.strip():
            return TEXT

        scores = self.score(content)
        if not scores:
            return TEXT

        # 同点の場合は RULES の定義順
        best = max(scores, key=scores.get)
        return best if scores[best] >= self.min_score else TEXT


class ChainedLanguageDetector(LanguageDetector):

    def __init__(self, *detectors: LanguageDetector):
        self.detectors = detectors

    def detect(self, content, file_name=None):
        for detector in self.detectors:
            language = detector.detect(content, file_name)
            if language != TEXT:
                return language
        return TEXT


def default_detector() -> LanguageDetector:
    return ChainedLanguageDetector(ExtensionLanguageDetector(), KeywordLanguageDetector())
