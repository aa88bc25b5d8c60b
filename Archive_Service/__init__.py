"""
Archive Service
REST persistence for uploaded videos, pose annotations, analyses and
labelled training uploads.
"""
