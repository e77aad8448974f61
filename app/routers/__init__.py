from app.routers import orders, products, teacher_sessions

__all__ = [
    'orders',
    'products',
    'teacher_sessions',
]
