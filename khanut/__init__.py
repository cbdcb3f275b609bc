"""Khanut customer transactions and Chapa payments backend"""
