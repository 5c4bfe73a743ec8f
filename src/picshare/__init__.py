"""PicShare: an image sharing service with per-user libraries."""
