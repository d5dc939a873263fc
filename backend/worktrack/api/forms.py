"""
请求体读取：同一个接口既接受 JSON，也接受带文件的 multipart 表单
"""
from typing import Any, Dict, List, Tuple

from fastapi import HTTPException, Request
from starlette.datastructures import UploadFile

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


def blank_to_none(value: Any) -> Any:
    """表单中未填写的字段以空字符串提交"""
    if isinstance(value, str) and value.strip() == "":
        return None
    return value


async def read_payload(request: Request, file_field: str) -> Tuple[Dict[str, Any], List[UploadFile]]:
    """
    读取请求字段和上传文件

    Returns:
        (字段字典, file_field 字段中的上传文件列表)
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        data: Dict[str, Any] = {}
        files: List[UploadFile] = []
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                if key == file_field and value.filename:
                    files.append(value)
            else:
                data[key] = value
        return data, files

    body = await request.body()
    if not body:
        return {}, []
    try:
        data = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="请求体不是有效的 JSON")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="请求体必须是 JSON 对象")
    return data, []
