"""Protocol layer: wire messages, codec, verification, currency and handlers."""
