"""
上传文件保存

所有文件按统一规则保存到 UPLOAD_DIR/{images,files,avatars}/ 下，
对外访问路径为 /uploads/<子目录>/<文件名>，写入时即校验大小与类型。
"""
import logging
import os
import secrets
import time
from typing import Iterable, List, Optional

from starlette.datastructures import UploadFile

from worktrack.core.config import settings
from worktrack.services.attachments import Attachment, UPLOAD_URL_PREFIX, attachment_file_path

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024

IMAGE_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}
FILE_TYPES = {
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
    "application/zip",
    "application/x-zip-compressed",
    "application/x-rar-compressed",
    "application/octet-stream",
}
AVATAR_TYPES = {"image/jpeg", "image/png"}


class UploadError(Exception):
    """文件上传失败，返回 400"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def _format_size(size: int) -> str:
    return f"{size // (1024 * 1024)}MB"


def _unique_filename(original_name: str, prefix: str = "") -> str:
    ext = os.path.splitext(original_name)[1].lower()
    return f"{prefix}{int(time.time() * 1000)}-{secrets.randbelow(10 ** 9)}{ext}"


async def save_upload(
    upload: UploadFile,
    max_size: int,
    allowed_types: Optional[Iterable[str]] = None,
    sub_dir: Optional[str] = None,
    prefix: str = "",
    type_error: str = "不支持的文件类型"
) -> Attachment:
    """
    保存一个上传文件

    Args:
        upload: 上传的文件
        max_size: 最大字节数
        allowed_types: 允许的 MIME 类型，None 表示不限制（未知类型只记录警告）
        sub_dir: 保存子目录，默认按是否为图片选择 images 或 files
        prefix: 文件名前缀
        type_error: 类型不允许时的提示

    Raises:
        UploadError: 超出大小、类型不允许或写入失败
    """
    original_name = upload.filename or "unnamed"
    mimetype = upload.content_type or "application/octet-stream"

    if allowed_types is not None and mimetype not in set(allowed_types):
        raise UploadError(type_error)
    if allowed_types is None and mimetype not in IMAGE_TYPES and mimetype not in FILE_TYPES:
        logger.warning("允许未知文件类型上传: %s (%s)", original_name, mimetype)

    if sub_dir is None:
        sub_dir = "images" if mimetype.startswith("image/") else "files"

    chunks = []
    size = 0
    while True:
        chunk = await upload.read(CHUNK_SIZE)
        if not chunk:
            break
        size += len(chunk)
        if size > max_size:
            logger.info("上传文件超出大小限制: %s", original_name)
            raise UploadError(f"文件大小不能超过{_format_size(max_size)}")
        chunks.append(chunk)

    filename = _unique_filename(original_name, prefix)
    target_dir = os.path.join(settings.UPLOAD_DIR, sub_dir)
    target_path = os.path.join(target_dir, filename)
    try:
        os.makedirs(target_dir, exist_ok=True)
        with open(target_path, "wb") as f:
            for chunk in chunks:
                f.write(chunk)
    except OSError as e:
        logger.error("保存上传文件失败: %s -> %s: %s", original_name, target_path, e)
        raise UploadError("文件保存失败，请联系管理员") from e

    logger.info("已保存上传文件 %s -> %s (%d 字节)", original_name, target_path, size)
    return Attachment(
        filename=filename,
        original_name=original_name,
        path=f"{UPLOAD_URL_PREFIX}{sub_dir}/{filename}",
        mimetype=mimetype,
        size=size
    )


async def save_attachments(uploads: List[UploadFile]) -> List[Attachment]:
    """保存工作项附件，任何一个失败时删除本批已保存的文件"""
    if len(uploads) > settings.MAX_ATTACHMENT_FILES:
        raise UploadError(f"一次最多上传{settings.MAX_ATTACHMENT_FILES}个附件")
    saved = []
    try:
        for upload in uploads:
            saved.append(await save_upload(upload, settings.MAX_ATTACHMENT_SIZE))
    except Exception:
        discard_uploads(saved)
        raise
    return saved


async def save_avatar(upload: UploadFile) -> Attachment:
    """保存用户头像，只允许 JPG/PNG"""
    return await save_upload(
        upload,
        settings.MAX_AVATAR_SIZE,
        allowed_types=AVATAR_TYPES,
        sub_dir="avatars",
        prefix="avatar-",
        type_error="只允许上传 JPG/PNG 格式的图片"
    )


def discard_uploads(attachments: Iterable[Attachment]) -> None:
    """删除尚未被任何记录引用的上传文件（请求失败时调用）"""
    for attachment in attachments:
        full_path = attachment_file_path(attachment)
        if full_path is None:
            continue
        try:
            os.remove(full_path)
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.error("删除上传文件失败: %s: %s", full_path, e)
            continue
        logger.info("已删除未使用的上传文件 %s", full_path)
