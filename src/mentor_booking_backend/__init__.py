'''
Mentor booking backend: availability, booking wizard and booking lifecycle API.
Run with `uvicorn mentor_booking_backend.main:app`.
'''
