from videojobs.models.video_job import JobStatus, VideoJob
from videojobs.models.video import Video

__all__ = ["JobStatus", "VideoJob", "Video"]
