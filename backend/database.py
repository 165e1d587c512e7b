import json
import os
import tempfile
import threading
from datetime import datetime

import config
from exceptions import StorageFault
from logging_config import logger


# 1. One JSON file per collection, rewritten wholesale on every change
class JsonCollection:
    """
    A list of records persisted as one JSON file.

    `lock` serializes load -> mutate -> save cycles; readers never see a
    half-written file because saves go through a temp file + os.replace.
    """

    def __init__(self, path):
        self.path = path
        self.lock = threading.RLock()

    def ensure(self):
        if not os.path.exists(self.path):
            self.save([])

    def load(self):
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as e:
            logger.error(f"Error loading {self.path}: {e}", exc_info=True)
            raise StorageFault(f"Failed to read {os.path.basename(self.path)}", path=self.path) from e

        if not isinstance(data, list):
            logger.error(f"Error loading {self.path}: expected a list, got {type(data).__name__}")
            raise StorageFault(f"Failed to read {os.path.basename(self.path)}", path=self.path)
        return data

    def save(self, records):
        directory = os.path.dirname(self.path) or '.'
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(prefix='.tmp-', suffix='.json', dir=directory)
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(records, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Error saving {self.path}: {e}", exc_info=True)
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise StorageFault(f"Failed to write {os.path.basename(self.path)}", path=self.path) from e


# 2. Everything the record store owns: both collections + the photo folder
class Database:
    def __init__(self, data_dir, clock=datetime.now):
        self.data_dir = data_dir
        self.photos_dir = os.path.join(data_dir, 'photos')
        self.staging_dir = os.path.join(data_dir, '.staging')
        self.visitors = JsonCollection(os.path.join(data_dir, 'visitors.json'))
        self.keys = JsonCollection(os.path.join(data_dir, 'keys.json'))
        self.clock = clock

    def collection(self, kind):
        return getattr(self, kind.name)

    def staging_for(self, kind):
        return os.path.join(self.staging_dir, kind.name)

    def init(self):
        os.makedirs(self.data_dir, exist_ok=True)
        os.makedirs(self.photos_dir, exist_ok=True)
        os.makedirs(self.staging_dir, exist_ok=True)
        self.visitors.ensure()
        self.keys.ensure()
        return self


db = Database(config.DATA_DIR)


def init_db():
    try:
        db.init()
    except OSError as e:
        logger.error(f"Error initializing data directories: {e}", exc_info=True)
        raise
    logger.info(f"Data directory ready: {db.data_dir}")


# Dependency used by the routes
def get_db():
    yield db


if __name__ == "__main__":
    init_db()
