"""HTTP API for test sheets"""
