"""
Routes Package - Routers FastAPI (negociacao + admin).
"""
