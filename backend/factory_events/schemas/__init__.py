"""
factory_events.schemas

Package des schémas API (Pydantic).

Rôle (fonctionnel) :
- Définit les modèles d’entrée/sortie utilisés par l’API (request/response).
- Sépare clairement :
  - le modèle ORM (factory_events.models) = persistance DB
  - les schémas Pydantic (factory_events.schemas) = contrat HTTP / validation de forme

La validation métier (champs requis, bornes, horloge) n’est pas ici : elle vit dans
factory_events.services.validation pour produire des rejets par enregistrement.
"""
