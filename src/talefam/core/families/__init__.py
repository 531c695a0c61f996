"""Families: cut-off subtrees of the item dendrogram and their maintenance."""
