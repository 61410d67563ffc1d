import logging

from fastapi import APIRouter, HTTPException, Request

from controllers.detox_controller import count_images, delete_image, get_image, list_gallery

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["images"])


@router.get("/images/{image_id}")
async def get_image_route(request: Request, image_id: int):
	"""Return the full analysis record with freshly signed URLs."""
	try:
		return await get_image(request, image_id)
	except HTTPException:
		raise
	except Exception as exc:
		logger.exception("Error fetching image %s", image_id)
		raise HTTPException(status_code=500, detail="Error fetching image data") from exc


@router.get("/images")
async def list_images_route(request: Request):
	"""Return public gallery entries, newest first."""
	try:
		return await list_gallery(request)
	except HTTPException:
		raise
	except Exception as exc:
		logger.exception("Error fetching gallery")
		raise HTTPException(status_code=500, detail="Error fetching gallery data") from exc


@router.delete("/images/{image_id}")
async def delete_image_route(request: Request, image_id: int):
	"""Delete an image and its stored files within two minutes of creation."""
	try:
		return await delete_image(request, image_id)
	except HTTPException:
		raise
	except Exception as exc:
		logger.exception("Error deleting image %s", image_id)
		raise HTTPException(status_code=500, detail="Failed to delete image") from exc


@router.get("/stats/count")
async def count_route(request: Request):
	try:
		return await count_images(request)
	except HTTPException:
		raise
	except Exception as exc:
		logger.exception("Error fetching deghib count")
		raise HTTPException(status_code=500, detail="Error fetching deghib count") from exc
