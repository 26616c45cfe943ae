"""
文章片段（snippet）

正文中形如 [name attr="value" ...] 的占位符在加载文章时被替换为片段模板，
模板中的 {attr} 用占位符里给出的值填充，未给出时使用变量的默认值。
"""
from dataclasses import dataclass
from dataclasses import field
import logging
import re
from typing import Dict, List, Optional

from pymongo.errors import PyMongoError

from utils.blog.errors import ContentLoadError
from utils.blog.types.common import json_list
from utils.core.database import next_sequence

SNIPPET_PATTERN = re.compile(r"\[(?P<key>[^\s^\]]+)[\s]*(?P<tail>[^]]*)\]")


@dataclass
class SnippetVariable:
    name: str
    default: str = ""


@dataclass
class Snippet:
    id: int
    name: str
    replacement: str
    variables: List[SnippetVariable] = field(default_factory=list)

    @classmethod
    def from_doc(cls, doc: dict) -> Optional["Snippet"]:
        snippet_id = doc.get("_id")
        try:
            return cls(
                id=int(snippet_id or 0),
                name=str(doc["name"]),
                replacement=str(doc["replacement"]),
                variables=[SnippetVariable(name=str(v["name"]), default=str(v.get("default", "")))
                           for v in json_list(doc.get("variables"), "variables", snippet_id)],
            )
        except (KeyError, TypeError, ValueError) as e:
            logging.warning(f"跳过无法解析的片段记录 {snippet_id}: {e}")
            return None

    @classmethod
    def from_json(cls, data: dict) -> "Snippet":
        return cls(
            id=int(data.get("id") or 0),
            name=str(data["name"]).strip(),
            replacement=str(data.get("replacement", "")),
            variables=[SnippetVariable(name=str(v["name"]), default=str(v.get("default", ""))) for v in data.get("variables") or []],
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "replacement": self.replacement,
            "variables": [{"name": v.name, "default": v.default} for v in self.variables],
        }

    def get_replacement(self, tail: str) -> str:
        """根据占位符的属性部分生成替换文本，同名属性出现多次时以最后一次为准"""
        text = self.replacement
        for var in self.variables:
            value = var.default
            for match in re.finditer(re.escape(var.name) + r'="(?P<capval>[^"]+)"', tail):
                value = match.group("capval")
            text = text.replace("{" + var.name + "}", value)
        return text


def apply_snippets(content: str, snippets: Dict[str, Snippet]) -> str:
    """替换正文中所有已知片段的占位符，未知名称保持原样"""
    if not snippets:
        return content

    modified = content
    for match in SNIPPET_PATTERN.finditer(content):
        snippet = snippets.get(match.group("key"))
        if snippet is not None:
            modified = modified.replace(match.group(0), snippet.get_replacement(match.group("tail")))
    return modified


def load_snippets(db) -> List[Snippet]:
    if db is None:
        raise ContentLoadError("snippets", "数据库不可用")
    try:
        docs = list(db.snippets.find())
    except PyMongoError as e:
        raise ContentLoadError("snippets", str(e)) from e
    return [s for s in (Snippet.from_doc(doc) for doc in docs) if s is not None]


def update_snippet_in_db(db, snippet: Snippet) -> int:
    snippet_id = snippet.id or next_sequence(db, "snippets")
    db.snippets.update_one(
        {"_id": snippet_id},
        {"$set": {
            "name": snippet.name,
            "replacement": snippet.replacement,
            "variables": [{"name": v.name, "default": v.default} for v in snippet.variables],
        }},
        upsert=True,
    )
    return snippet_id
