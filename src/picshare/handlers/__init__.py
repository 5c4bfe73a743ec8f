"""HTTP request handlers for PicShare."""
