"""Linked byte buffers, their nodes, and a fixed read buffer."""