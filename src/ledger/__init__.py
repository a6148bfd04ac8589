"""Quote-to-Project ledger: conversion, payment reconciliation and finance rollup."""
