"""Authenticated streaming of call recordings.

A signed, short-lived token is resolved to a Twilio recording (directly, via the
Base44 call record, or by listing the call's recordings) and the audio is
proxied back to the caller with byte-range support.
"""
