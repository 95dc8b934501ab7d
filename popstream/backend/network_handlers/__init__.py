"""HTTP plumbing shared by the metadata and torrent providers."""
