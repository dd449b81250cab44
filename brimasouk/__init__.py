"""Brimasouk — 職人マーケットプレイスのバックエンド"""
