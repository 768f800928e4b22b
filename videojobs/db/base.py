from videojobs.db.base_class import Base  # noqa: F401

# Import all the models here so that Base has them registered
# This file should NOT be imported by models.
from videojobs.models.video_job import VideoJob  # noqa: F401
from videojobs.models.video import Video  # noqa: F401
