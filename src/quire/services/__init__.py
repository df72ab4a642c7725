"""Service layer — content resolution, editing, snapshots, maintenance.

Services may import from domain and infrastructure layers.
"""
