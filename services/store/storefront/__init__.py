"""
Store Service — 注文確定 (Order Placement) を中心とした小売バックエンド
"""
