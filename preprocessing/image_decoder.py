import cv2
import numpy as np

from config.constants import IMAGE_ENCODING_FORMAT, JPEG_QUALITY
from preprocessing.resizer import resize_to_720p
from utils.errors import ValidationError


def decode_image(data: bytes) -> np.ndarray:
    """Decode JPEG/PNG bytes to a BGR NumPy array."""
    if not data:
        raise ValidationError("Empty image upload")
    nparr = np.frombuffer(data, np.uint8)
    img = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    if img is None:
        raise ValidationError("Invalid image format")
    return img


def encode_to_jpeg(image: np.ndarray) -> bytes:
    """Encode numpy array image to JPEG bytes."""
    success, buffer = cv2.imencode(
        IMAGE_ENCODING_FORMAT, image, [int(cv2.IMWRITE_JPEG_QUALITY), JPEG_QUALITY]
    )
    if not success:
        raise ValidationError("Could not encode image")
    return buffer.tobytes()


def prepare_upload(data: bytes) -> bytes:
    """Validate an uploaded image and return it as a JPEG no larger than 1280x720."""
    return encode_to_jpeg(resize_to_720p(decode_image(data)))
