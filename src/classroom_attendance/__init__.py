"""Classroom Attendance package.

Feature modules (classes, attendance, history, stats, students, users) each
carry a model, a repository protocol with a MySQL implementation, a service
layer and a thin Flask controller.
"""
