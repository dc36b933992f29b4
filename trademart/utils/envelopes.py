from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from trademart.utils.exceptions import AppException


def api_success(data: Any) -> Dict[str, Any]:
	return {"success": True, "data": data, "error": None}


def api_error(code: str, message: str, details: Optional[Any] = None) -> Dict[str, Any]:
	error: Dict[str, Any] = {"code": code, "message": message}
	if details is not None:
		error["details"] = details
	return {"success": False, "data": None, "error": error}


def api_page(items: list[Any], total: int, limit: int, offset: int) -> Dict[str, Any]:
	return api_success({"items": items, "total": total, "limit": limit, "offset": offset})


def error_response(exc: AppException, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
	return JSONResponse(
		status_code=exc.status_code,
		content=jsonable_encoder(api_error(exc.code, exc.message, exc.details)),
		headers=headers,
	)
