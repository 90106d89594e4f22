"""Integration tests for the Vote Recorder.

These tests run against the Firestore emulator. Start it with
``gcloud emulators firestore start`` and export FIRESTORE_EMULATOR_HOST.
"""
