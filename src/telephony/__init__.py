"""Audio conversion between the call transport and the realtime model.

Call side: G.711 mu-law at 8 kHz. Model side: PCM16 little-endian mono.
"""
