import base64
import binascii
import os
import re
import shutil

import cv2
import numpy as np

import config
from exceptions import PhotoIOFault, ValidationError
from logging_config import logger

# data:image/jpeg;base64,.... (the prefix the browser camera capture adds)
DATA_URI_PREFIX = re.compile(r'^data:image/\w+;base64,')

SIDES = ("front", "back")

PHOTO_URL_PREFIX = "/photos/"


def photo_filename(prefix, serial_number, side):
    """0001_front.jpg for visitors, key_0001_front.jpg for keys"""
    return f"{prefix}{serial_number}_{side}.jpg"


def photo_url(filename):
    return f"{PHOTO_URL_PREFIX}{filename}"


def decode_photo_payload(payload, field):
    """
    Turn a base64 / data URI payload into JPEG bytes.
    Raises ValidationError (naming `field`) if the payload is not a readable image.
    """
    data = DATA_URI_PREFIX.sub('', payload.strip())
    data = re.sub(r'\s+', '', data)
    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError(f"Invalid photo data: {field}", [field])

    if not raw:
        raise ValidationError(f"Invalid photo data: {field}", [field])
    if len(raw) > config.MAX_PHOTO_BYTES:
        raise ValidationError(f"Photo too large: {field}", [field])

    # Decode straight from memory
    nparr = np.frombuffer(raw, np.uint8)
    img = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    if img is None:
        raise ValidationError(f"Photo is not a readable image: {field}", [field])

    # Phone cameras send very large frames; an ID card stays legible at ~1280px
    height, width = img.shape[:2]
    if config.PHOTO_MAX_WIDTH and width > config.PHOTO_MAX_WIDTH:
        scale = config.PHOTO_MAX_WIDTH / width
        img = cv2.resize(img, None, fx=scale, fy=scale, interpolation=cv2.INTER_AREA)

    ok, buffer = cv2.imencode('.jpg', img, [int(cv2.IMWRITE_JPEG_QUALITY), config.JPEG_QUALITY])
    if not ok:
        raise PhotoIOFault(f"Could not encode {field} as JPEG")
    return buffer.tobytes()


def write_photo(photos_dir, filename, content):
    dest_path = os.path.join(photos_dir, filename)
    try:
        with open(dest_path, 'wb') as f:
            f.write(content)
    except OSError as e:
        logger.error(f"Error writing photo {filename}: {e}", extra={"path": dest_path})
        raise PhotoIOFault(f"Failed to save photo {filename}", path=dest_path) from e
    return dest_path


def remove_photo(photos_dir, filename):
    """Best effort. Returns False (and logs) if an existing file could not be removed."""
    path = os.path.join(photos_dir, filename)
    try:
        os.remove(path)
    except FileNotFoundError:
        return True
    except OSError as e:
        logger.warning(f"Error deleting photo {filename}: {e}", extra={"path": path})
        return False
    return True


def stage_photo(photos_dir, staging_dir, old_name, new_name):
    """Copy photos_dir/old_name to staging_dir/new_name. The original stays in place."""
    src = os.path.join(photos_dir, old_name)
    dst = os.path.join(staging_dir, new_name)
    try:
        shutil.copyfile(src, dst)
    except OSError as e:
        logger.warning(f"Error staging photo {old_name} -> {new_name}: {e}", extra={"path": src})
        return False
    return True


def publish_staged(staging_dir, photos_dir, filename):
    """Move a staged copy over its final name, copying if the move fails"""
    src = os.path.join(staging_dir, filename)
    dst = os.path.join(photos_dir, filename)
    try:
        os.replace(src, dst)
        return True
    except OSError as e:
        logger.warning(f"Error renaming photo {filename}: {e}; copying instead", extra={"path": dst})

    try:
        shutil.copyfile(src, dst)
    except OSError as e:
        logger.error(f"Error copying staged photo {filename}: {e}", extra={"path": dst})
        return False
    try:
        os.remove(src)
    except OSError as e:
        logger.warning(f"Staged copy {filename} left behind: {e}")
    return True


def clear_staging(staging_dir):
    """Drop leftovers of an interrupted renumbering"""
    try:
        os.makedirs(staging_dir, exist_ok=True)
        names = os.listdir(staging_dir)
    except OSError as e:
        logger.error(f"Staging folder unusable: {e}", extra={"path": staging_dir})
        raise PhotoIOFault("Photo staging folder is not accessible", path=staging_dir) from e

    for name in names:
        try:
            os.remove(os.path.join(staging_dir, name))
        except OSError as e:
            logger.warning(f"Error clearing staged photo {name}: {e}")
