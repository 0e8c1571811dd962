"""
API routers for the video asset service
"""
