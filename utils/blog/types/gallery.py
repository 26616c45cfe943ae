"""
图库列表（仅供管理后台浏览，上传与缩放不在本服务中处理）
"""
from dataclasses import dataclass
import logging
from typing import List, Optional

from pymongo.errors import PyMongoError

from utils.blog.types.common import to_unix


@dataclass
class GalleryImage:
    guid: str
    extension: str
    size_x: int
    size_y: int
    uploaded_at: int

    def to_dict(self) -> dict:
        return {"guid": self.guid, "extension": self.extension, "sizeX": self.size_x, "sizeY": self.size_y}


def load_gallery(db) -> Optional[List[GalleryImage]]:
    """按上传时间倒序列出图片"""
    try:
        docs = list(db.gallery.find().sort("uploaded_at", -1))
    except PyMongoError as e:
        logging.error(f"获取图库失败: {e}")
        return None

    images = []
    for doc in docs:
        try:
            images.append(GalleryImage(
                guid=str(doc["guid"]),
                extension=str(doc.get("extension", "")),
                size_x=int(doc.get("size_x", 0)),
                size_y=int(doc.get("size_y", 0)),
                uploaded_at=to_unix(doc.get("uploaded_at")),
            ))
        except (KeyError, TypeError, ValueError) as e:
            logging.warning(f"跳过无法解析的图片记录 {doc.get('_id')}: {e}")
    return images
