"""Cloud resources backing a cluster: instances, tags and key pairs."""
