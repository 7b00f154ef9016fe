"""
scripts

Package utilitaire pour les scripts d’exploitation.

Rôle (fonctionnel) :
- Contient des scripts exécutables (CLI) liés au projet, par exemple :
  - génération de batches d’événements (démo, charge, renvois)
  - tâches ponctuelles de debug / inspection

Note :
- Les scripts ne contiennent pas de logique métier “centrale” :
  ils orchestrent et appellent les modules de `factory_events/` (services, db…).
"""
