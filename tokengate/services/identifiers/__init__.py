from .snowflake import SnowflakeIdGenerator, boundary_score, timestamp_of

__all__ = ["SnowflakeIdGenerator", "boundary_score", "timestamp_of"]
